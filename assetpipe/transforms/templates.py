"""AngularJS template bundling.

Turns a set of HTML view files into one script that preloads them into the
$templateCache of an AngularJS module, so views are not fetched one by one.

Example output for module 'dashkiosk' and app/views/admin.html with cwd
'app':

    angular.module('dashkiosk').run(['$templateCache', function($templateCache) {
      'use strict';

      $templateCache.put('views/admin.html',
        "<div>...</div>"
      );

    }]);
"""

import json
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List

from ..assets import Asset
from ..exceptions import OptionsError
from .base import Options

_MODULE_RE = re.compile(r'^[A-Za-z_$][\w.$-]*$')


@dataclass
class TemplatesOptions(Options):
    """Options of the 'templates' transform type.

    module:     AngularJS module the templates are registered in
    cwd:        prefix stripped from file paths to form template URLs
    prefix:     prepended to every template URL
    standalone: declare the module instead of extending it
    """
    module: str
    cwd: str = ""
    prefix: str = ""
    standalone: bool = False

    def validate(self) -> None:
        if not _MODULE_RE.match(self.module):
            raise OptionsError(f"invalid AngularJS module name '{self.module}'")


def template_url(path: str, options: TemplatesOptions) -> str:
    url = path
    if options.cwd:
        url = posixpath.relpath(path, options.cwd.rstrip('/'))
    if options.prefix:
        url = posixpath.join(options.prefix, url)
    return url


def _js_string(text: str) -> str:
    # json.dumps does not escape '</' which would end an inline <script>
    return json.dumps(text).replace('</', '<\\/')


def render_templates(assets: List[Asset], options: TemplatesOptions) -> str:
    deps = ", []" if options.standalone else ""
    lines = [
        f"angular.module('{options.module}'{deps}).run(['$templateCache', "
        "function($templateCache) {",
        "  'use strict';",
        "",
    ]
    for asset in sorted(assets, key=lambda a: a.path):
        lines.append(f"  $templateCache.put('{template_url(asset.path, options)}',")
        lines.append(f"    {_js_string(asset.text)}")
        lines.append("  );")
        lines.append("")
    lines.append("}]);")
    return "\n".join(lines) + "\n"


def make_templates(options: TemplatesOptions, base_path: Path):
    return render_templates
