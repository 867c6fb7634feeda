"""Source and output assets.

An Asset is a snapshot of one file taken when a build step reads it. Paths are
always project-relative and use '/' as separator, so they can be compared with
glob patterns and staleness records regardless of platform.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Union


class AssetKind(Enum):
    """What kind of front-end asset a file is."""
    MARKUP = "markup"
    STYLE = "style"
    SCRIPT = "script"
    TEMPLATE = "template"
    IMAGE = "image"
    FONT = "font"
    OTHER = "other"

    @classmethod
    def for_path(cls, path: str) -> 'AssetKind':
        """Guess the kind from extension (and 'views' directory for templates)."""
        pure = PurePosixPath(path)
        ext = pure.suffix.lower()
        if ext in ('.html', '.htm'):
            if 'views' in pure.parts[:-1]:
                return cls.TEMPLATE
            return cls.MARKUP
        return _KIND_BY_EXT.get(ext, cls.OTHER)


_KIND_BY_EXT = {
    '.css': AssetKind.STYLE,
    '.less': AssetKind.STYLE,
    '.js': AssetKind.SCRIPT,
    '.png': AssetKind.IMAGE,
    '.jpg': AssetKind.IMAGE,
    '.jpeg': AssetKind.IMAGE,
    '.gif': AssetKind.IMAGE,
    '.svg': AssetKind.IMAGE,
    '.webp': AssetKind.IMAGE,
    '.ico': AssetKind.IMAGE,
    '.ttf': AssetKind.FONT,
    '.otf': AssetKind.FONT,
    '.woff': AssetKind.FONT,
    '.woff2': AssetKind.FONT,
    '.eot': AssetKind.FONT,
}


def to_key(path: Union[str, Path], base_path: Path) -> str:
    """Convert a filesystem path to a project-relative posix key.

    Relative paths are taken as already relative to base_path.
    """
    p = Path(path)
    if p.is_absolute():
        p = p.relative_to(base_path)
    return p.as_posix()


@dataclass(frozen=True)
class Asset:
    """A file read for one build pass.

    Attributes:
        path: project-relative posix path
        kind: AssetKind derived from the path
        content: file bytes
        mtime: last modification time when read
    """
    path: str
    kind: AssetKind
    content: bytes = field(repr=False)
    mtime: float

    @classmethod
    def read(cls, base_path: Path, path: str) -> 'Asset':
        full = Path(base_path) / path
        stat = full.stat()
        return cls(
            path=path,
            kind=AssetKind.for_path(path),
            content=full.read_bytes(),
            mtime=stat.st_mtime,
        )

    @property
    def text(self) -> str:
        return self.content.decode('utf-8')

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    def absolute(self, base_path: Path) -> Path:
        return Path(base_path) / self.path
