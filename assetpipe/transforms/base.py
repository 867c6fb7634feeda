"""Typed options and the transform type table.

Every built-in transform type declares an options dataclass. Options come
from YAML as plain mappings; from_dict() rejects unknown keys and values of
the wrong type, so a typo in an option name fails when the pipeline is
loaded instead of being silently ignored.
"""

import dataclasses
import typing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Tuple

from ..exceptions import OptionsError
from ..registry import OutputMode


def _type_name(tp) -> str:
    return getattr(tp, '__name__', None) or str(tp).replace('typing.', '')


def _check_type(value, tp) -> bool:
    """Loose runtime check of value against a typing annotation."""
    if tp is Any:
        return True
    origin = typing.get_origin(tp)
    if origin is typing.Union:
        return any(_check_type(value, arg) for arg in typing.get_args(tp))
    if origin in (list, tuple):
        args = typing.get_args(tp)
        if not isinstance(value, (list, tuple)):
            return False
        return not args or all(_check_type(v, args[0]) for v in value)
    if origin is dict:
        args = typing.get_args(tp)
        if not isinstance(value, dict):
            return False
        return not args or all(
            _check_type(k, args[0]) and _check_type(v, args[1])
            for k, v in value.items())
    if tp is type(None):
        return value is None
    if tp is float:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if tp is int:
        return isinstance(value, int) and not isinstance(value, bool)
    return isinstance(value, tp)


@dataclass
class Options:
    """Base class for transform options."""

    @classmethod
    def from_dict(cls, transform_name: str, data) -> 'Options':
        """Build options from a mapping.

        @raises OptionsError: unknown key, missing required key or bad type
        """
        data = data or {}
        if not isinstance(data, dict):
            raise OptionsError(
                f"Transform '{transform_name}': 'options' must be a mapping")
        fields = {f.name: f for f in dataclasses.fields(cls)}
        for key in data:
            if key not in fields:
                valid = ", ".join(sorted(fields)) or "(none)"
                raise OptionsError(
                    f"Transform '{transform_name}': unknown option '{key}'. "
                    f"Valid options: {valid}")
        hints = typing.get_type_hints(cls)
        for name, f in fields.items():
            required = (f.default is dataclasses.MISSING
                        and f.default_factory is dataclasses.MISSING)
            if name not in data:
                if required:
                    raise OptionsError(
                        f"Transform '{transform_name}': missing option '{name}'")
                continue
            if not _check_type(data[name], hints[name]):
                raise OptionsError(
                    f"Transform '{transform_name}': option '{name}' must be "
                    f"{_type_name(hints[name])}, got {data[name]!r}")
        options = cls(**data)
        try:
            options.validate()
        except OptionsError as exc:
            raise OptionsError(f"Transform '{transform_name}': {exc}") from None
        return options

    def validate(self) -> None:
        """Cross-field checks. Raise OptionsError on invalid values."""


@dataclass
class TransformType:
    """A kind of leaf transform usable from the pipeline file.

    Attributes:
        name: type name used as 'type:' in YAML
        options_class: Options subclass
        factory: (options, base_path) -> leaf function
        modes: output modes this type supports
    """
    name: str
    options_class: type
    factory: Callable[[Any, Path], Callable]
    modes: Tuple[OutputMode, ...]


_TYPES: Dict[str, TransformType] = {}


def register_type(transform_type: TransformType) -> TransformType:
    _TYPES[transform_type.name] = transform_type
    return transform_type


def get_type(name: str) -> TransformType:
    try:
        return _TYPES[name]
    except KeyError:
        raise OptionsError(
            f"unknown transform type '{name}'. "
            f"Valid types: {', '.join(sorted(_TYPES))}") from None


def type_names():
    return sorted(_TYPES)
