"""Glob patterns for transform inputs.

Patterns are relative to the project root and use '/' as separator.

Pattern syntax:
- *       any characters except '/'
- ?       one character except '/'
- **      any number of directories ("**/" may match nothing)
- {a,b}   alternatives, may be nested and may be empty: "{,*/}*.js"

Example:
    pattern = GlobPattern("app/styles/{,*/}*.less")
    pattern.match("app/styles/main.less")        # True
    pattern.match("app/styles/theme/dark.less")  # True
    pattern.static_prefix                         # "app/styles/"
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

_SPECIAL = '*?{['


def _find_closing_brace(pattern: str, start: int) -> int:
    """Return index of the '}' matching the '{' at start, or -1."""
    depth = 0
    for i in range(start, len(pattern)):
        if pattern[i] == '{':
            depth += 1
        elif pattern[i] == '}':
            depth -= 1
            if depth == 0:
                return i
    return -1


def _split_alternatives(body: str) -> List[str]:
    """Split brace body on top-level commas."""
    parts = []
    depth = 0
    current = []
    for ch in body:
        if ch == ',' and depth == 0:
            parts.append(''.join(current))
            current = []
            continue
        if ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
        current.append(ch)
    parts.append(''.join(current))
    return parts


def translate(pattern: str) -> str:
    """Translate a glob pattern into a regex body (without anchors)."""
    out = []
    i = 0
    n = len(pattern)
    while i < n:
        ch = pattern[i]
        if ch == '*':
            if pattern.startswith('**', i):
                if pattern.startswith('**/', i):
                    out.append('(?:[^/]+/)*')
                    i += 3
                else:
                    out.append('.*')
                    i += 2
                continue
            out.append('[^/]*')
        elif ch == '?':
            out.append('[^/]')
        elif ch == '{':
            end = _find_closing_brace(pattern, i)
            if end == -1:
                out.append(re.escape(ch))
            else:
                alternatives = _split_alternatives(pattern[i + 1:end])
                out.append('(?:' + '|'.join(translate(a) for a in alternatives) + ')')
                i = end + 1
                continue
        else:
            out.append(re.escape(ch))
        i += 1
    return ''.join(out)


def extract_static_prefix(pattern: str) -> str:
    """Return the directory part of pattern before any special character.

    Examples:
        "app/styles/{,*/}*.less" -> "app/styles/"
        "app/*.html"             -> "app/"
        "*.html"                 -> ""
        "server.js"              -> ""
        "lib/util/index.js"      -> "lib/util/"
    """
    positions = [pattern.find(c) for c in _SPECIAL if c in pattern]
    prefix = pattern[:min(positions)] if positions else pattern
    last_slash = prefix.rfind('/')
    if last_slash == -1:
        return ""
    return prefix[:last_slash + 1]


@dataclass
class GlobPattern:
    """A compiled glob pattern."""

    pattern: str
    _regex: Optional[re.Pattern] = field(init=False, repr=False, default=None)

    def __post_init__(self):
        self.pattern = self.pattern.replace('\\', '/')
        if self.pattern.startswith('./'):
            self.pattern = self.pattern[2:]
        self._regex = re.compile('^' + translate(self.pattern) + '$')

    @property
    def static_prefix(self) -> str:
        return extract_static_prefix(self.pattern)

    def match(self, path: str) -> bool:
        return self._regex.match(path) is not None

    def could_match_under(self, directory: str) -> bool:
        """Whether some path under directory could match, files present or not."""
        directory = directory.strip('/')
        if not directory:
            return True
        if not any(c in self.pattern for c in _SPECIAL):
            return self.pattern == directory or self.pattern.startswith(directory + '/')
        prefix = self.static_prefix.rstrip('/')
        if not prefix:
            return True
        return (prefix == directory or prefix.startswith(directory + '/')
                or directory.startswith(prefix + '/'))

    def glob(self, base_path: Path) -> Iterator[str]:
        """Yield project-relative paths of existing files matching the pattern.

        Only the directory tree under the static prefix is walked. Results are
        sorted so that transforms see inputs in a stable order.
        """
        base_path = Path(base_path)
        if not any(c in self.pattern for c in _SPECIAL):
            # literal path, no walk needed
            found = [self.pattern] if (base_path / self.pattern).is_file() else []
            return iter(found)
        prefix = self.static_prefix
        root = base_path / prefix if prefix else base_path
        if not root.is_dir():
            return iter(())
        found = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            rel_dir = Path(dirpath).relative_to(base_path).as_posix()
            for name in filenames:
                rel = name if rel_dir == '.' else f"{rel_dir}/{name}"
                if self.match(rel):
                    found.append(rel)
        return iter(sorted(found))


def compile_all(patterns: Sequence[str]) -> List[GlobPattern]:
    return [GlobPattern(p) for p in patterns]


def match_any(patterns: Sequence[GlobPattern], path: str) -> bool:
    return any(p.match(path) for p in patterns)


def glob_all(patterns: Sequence[GlobPattern], base_path: Path) -> List[str]:
    """Union of all pattern matches, sorted and without duplicates."""
    seen = set()
    for pattern in patterns:
        seen.update(pattern.glob(base_path))
    return sorted(seen)
