"""Built-in transform types.

Each type pairs an options dataclass with a factory returning the leaf
function. The pipeline file refers to them by name:

    transforms:
      less:
        type: command
        input: "app/styles/{,*/}*.less"
        sources: "app/styles/*.less"
        output: {dest: build/styles, cwd: app/styles, ext: .css}
        options:
          command: "lessc {source}"
"""

from ..registry import OutputMode
from .base import Options, TransformType, get_type, register_type, type_names
from .blocks import BlocksOptions, BuildBlocks, make_blocks
from .command import CommandAction, CommandOptions, make_command
from .copy import ConcatOptions, CopyOptions, make_concat, make_copy
from .templates import TemplatesOptions, make_templates, render_templates

register_type(TransformType(
    'copy', CopyOptions, make_copy, (OutputMode.EACH,)))
register_type(TransformType(
    'concat', ConcatOptions, make_concat, (OutputMode.CONCAT,)))
register_type(TransformType(
    'templates', TemplatesOptions, make_templates, (OutputMode.CONCAT,)))
register_type(TransformType(
    'command', CommandOptions, make_command,
    (OutputMode.NONE, OutputMode.EACH, OutputMode.CONCAT)))
register_type(TransformType(
    'blocks', BlocksOptions, make_blocks, (OutputMode.MULTI,)))

__all__ = [
    'Options', 'TransformType', 'get_type', 'register_type', 'type_names',
    'BlocksOptions', 'BuildBlocks', 'CommandAction', 'CommandOptions',
    'ConcatOptions', 'CopyOptions', 'TemplatesOptions', 'render_templates',
]
