"""Copy and concatenation transforms."""

from dataclasses import dataclass
from pathlib import Path
from typing import List

from ..assets import Asset
from .base import Options


@dataclass
class CopyOptions(Options):
    pass


def make_copy(options: CopyOptions, base_path: Path):
    def copy(assets: List[Asset], options=None) -> bytes:
        return assets[0].content
    return copy


@dataclass
class ConcatOptions(Options):
    """Options of the 'concat' transform type.

    separator is placed between files, banner before the first one.
    """
    separator: str = "\n"
    banner: str = ""


def make_concat(options: ConcatOptions, base_path: Path):
    separator = options.separator.encode('utf-8')
    banner = options.banner.encode('utf-8')

    def concat(assets: List[Asset], options=None) -> bytes:
        return banner + separator.join(a.content for a in assets)
    return concat
