"""Staleness records: which inputs (and their timestamps) produced each output.

A record is created the first time an output is built, overwritten each time
it is rebuilt, and discarded when a clean step removes the output. Every run
of a transform also leaves one record under the key "transform:<name>", so
transforms without outputs (linters) still count as run and a transform
whose outputs a later step rewrote in place still knows what it read.

The store is shared by every build pass of a watch session. The build engine
is its only writer; the lock only guards readers on other threads (reload
notifications, tests) against a pass in progress.
"""

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union


@dataclass
class StalenessRecord:
    """Inputs used the last time an output was produced.

    Attributes:
        output: output path, or "transform:<name>" for zero-output transforms
        transform: name of the producing transform
        task: name of the task the transform ran in
        inputs: input path -> mtime at the time it was read
    """
    output: str
    transform: str
    task: Optional[str] = None
    inputs: Dict[str, float] = field(default_factory=dict)

    def is_stale(self, current_inputs: Dict[str, float]) -> bool:
        """True if inputs were added, removed or touched since this record."""
        return current_inputs != self.inputs

    def changed_inputs(self, current_inputs: Dict[str, float]) -> List[str]:
        """Input paths that are new or whose mtime differs."""
        return sorted(
            path for path, mtime in current_inputs.items()
            if self.inputs.get(path) != mtime
        )

    def to_dict(self) -> dict:
        return {
            'output': self.output,
            'transform': self.transform,
            'task': self.task,
            'inputs': dict(self.inputs),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'StalenessRecord':
        return cls(
            output=data['output'],
            transform=data['transform'],
            task=data.get('task'),
            inputs={k: float(v) for k, v in data.get('inputs', {}).items()},
        )


def validation_key(transform_name: str) -> str:
    """Record key for a transform that produces no outputs."""
    return f"transform:{transform_name}"


class StalenessStore:
    """In-memory staleness records, optionally saved to a JSON file."""

    VERSION = 1

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else None
        self._records: Dict[str, StalenessRecord] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[StalenessRecord]:
        with self._lock:
            return self._records.get(key)

    def record(self, record: StalenessRecord) -> None:
        with self._lock:
            self._records[record.output] = record

    def discard(self, key: str) -> bool:
        with self._lock:
            return self._records.pop(key, None) is not None

    def discard_under(self, prefix: str) -> List[str]:
        """Drop records of outputs equal to prefix or inside directory prefix."""
        prefix = prefix.rstrip('/')
        with self._lock:
            gone = [
                key for key in self._records
                if key == prefix or key.startswith(prefix + '/')
            ]
            for key in gone:
                del self._records[key]
        return gone

    def for_transform(self, transform_name: str) -> List[StalenessRecord]:
        with self._lock:
            return [r for r in self._records.values() if r.transform == transform_name]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._records)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._records

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __iter__(self) -> Iterator[StalenessRecord]:
        with self._lock:
            return iter(list(self._records.values()))

    def load(self) -> None:
        """Load records from self.path. A missing file means no records."""
        if self.path is None or not self.path.exists():
            return
        with open(self.path) as f:
            data = json.load(f)
        if data.get('version') != self.VERSION:
            # written by an incompatible version, rebuild from scratch
            return
        with self._lock:
            self._records = {
                key: StalenessRecord.from_dict(value)
                for key, value in data.get('records', {}).items()
            }

    def save(self) -> None:
        if self.path is None:
            return
        with self._lock:
            data = {
                'version': self.VERSION,
                'records': {k: r.to_dict() for k, r in sorted(self._records.items())},
            }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(data, f, indent=1, sort_keys=True)
