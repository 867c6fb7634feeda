"""Fingerprint and rewrite pass for production builds.

Runs once after the production task completed, over the public dist tree:

1. Every file matching the fingerprint globs is renamed to
   "<md5[:8]>.<name>" in its own directory. The old -> new mapping is the
   Reference Map.
2. Every markup and stylesheet file matching the rewrite globs is scanned
   for local references (src/href attributes, url(...), @import). Mapped
   references are rewritten; references to files that neither were
   fingerprinted nor exist raise UnresolvedReferenceError.

The Reference Map only lives for the duration of run(). The pass expects a
tree built from clean; running it over already fingerprinted files is not
supported.

Example:
    result = FingerprintPass("dist/public",
                             files=["scripts/*.js", "styles/*.css"]).run()
    result.reference_map["styles/main.css"]   # "styles/1f3a9c0e.main.css"
"""

import hashlib
import posixpath
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .exceptions import UnresolvedReferenceError
from .matching import compile_all, glob_all
from .reporter import Reporter

FINGERPRINT_LENGTH = 8

DEFAULT_REWRITE = ['**/*.html', '**/*.css']

_HTML_ATTR_RE = re.compile(
    r'''(?P<lead>\b(?:src|href)\s*=\s*)(?P<quote>["'])(?P<url>[^"']*)(?P=quote)''',
    re.IGNORECASE)
_CSS_URL_RE = re.compile(
    r'''(?P<lead>url\(\s*)(?P<quote>["']?)(?P<url>[^"')\s]+)(?P=quote)(?=\s*\))''',
    re.IGNORECASE)
_CSS_IMPORT_RE = re.compile(
    r'''(?P<lead>@import\s+)(?P<quote>["'])(?P<url>[^"']+)(?P=quote)''',
    re.IGNORECASE)
_SCHEME_RE = re.compile(r'^[a-zA-Z][a-zA-Z0-9+.-]*:')
_SPLIT_RE = re.compile(r'^(?P<path>[^?#]*)(?P<suffix>.*)$', re.DOTALL)


def fingerprint(content: bytes, length: int = FINGERPRINT_LENGTH) -> str:
    """Content-derived identifier, independent of path and timestamps."""
    return hashlib.md5(content).hexdigest()[:length]


def fingerprinted_path(path: str, digest: str) -> str:
    """"styles/main.css" + "1f3a9c0e" -> "styles/1f3a9c0e.main.css"."""
    directory, name = posixpath.split(path)
    return posixpath.join(directory, f"{digest}.{name}")


def is_external(url: str) -> bool:
    """True for URLs the rewrite must not touch."""
    url = url.strip()
    return (not url or url.startswith('#') or url.startswith('//')
            or '{{' in url or _SCHEME_RE.match(url) is not None)


@dataclass
class FingerprintResult:
    reference_map: Dict[str, str] = field(default_factory=dict)
    """Original path -> fingerprinted path, relative to the root."""

    rewritten: List[str] = field(default_factory=list)
    """Files whose content changed during the rewrite step."""


class FingerprintPass:
    """Rename assets by content hash and rewrite references to them."""

    def __init__(self, root: Union[str, Path], files: Sequence[str],
                 rewrite: Optional[Sequence[str]] = None,
                 length: int = FINGERPRINT_LENGTH,
                 reporter: Optional[Reporter] = None):
        self.root = Path(root)
        self.files = list(files)
        self.rewrite_patterns = list(rewrite) if rewrite is not None else list(DEFAULT_REWRITE)
        self.length = length
        self.reporter = reporter if reporter is not None else Reporter()

    def run(self) -> FingerprintResult:
        result = FingerprintResult()
        result.reference_map = self.rename()
        result.rewritten = self.rewrite(result.reference_map)
        return result

    def rename(self) -> Dict[str, str]:
        """Rename matching files and return the Reference Map."""
        reference_map: Dict[str, str] = {}
        for path in glob_all(compile_all(self.files), self.root):
            source = self.root / path
            digest = fingerprint(source.read_bytes(), self.length)
            new_path = fingerprinted_path(path, digest)
            source.rename(self.root / new_path)
            reference_map[path] = new_path
            self.reporter.debug(f"rev {path} -> {new_path}")
        return reference_map

    def rewrite(self, reference_map: Dict[str, str]) -> List[str]:
        """Rewrite references in markup and stylesheets.

        Raises:
            UnresolvedReferenceError: a local reference matches neither the
                Reference Map nor an existing file
        """
        rewritten = []
        for path in glob_all(compile_all(self.rewrite_patterns), self.root):
            full = self.root / path
            text = full.read_text(encoding='utf-8')
            new_text = self.rewrite_text(path, text, reference_map)
            if new_text != text:
                full.write_text(new_text, encoding='utf-8')
                rewritten.append(path)
        return rewritten

    def rewrite_text(self, source: str, text: str, reference_map: Dict[str, str]) -> str:
        """Rewrite the references of one file given its root-relative path."""
        if source.lower().endswith(('.html', '.htm')):
            regexes = [_HTML_ATTR_RE, _CSS_URL_RE]
        else:
            regexes = [_CSS_URL_RE, _CSS_IMPORT_RE]

        def replace(match):
            url = match.group('url')
            new_url = self._rewrite_url(source, url, reference_map)
            quote = match.group('quote')
            return f"{match.group('lead')}{quote}{new_url}{quote}"

        for regex in regexes:
            text = regex.sub(replace, text)
        return text

    def _rewrite_url(self, source: str, url: str, reference_map: Dict[str, str]) -> str:
        if is_external(url):
            return url
        parts = _SPLIT_RE.match(url)
        ref_path, suffix = parts.group('path'), parts.group('suffix')
        if not ref_path:
            return url

        absolute = ref_path.startswith('/')
        if absolute:
            key = posixpath.normpath(ref_path.lstrip('/') or '.')
        else:
            key = posixpath.normpath(posixpath.join(posixpath.dirname(source), ref_path))

        if key in reference_map:
            new_key = reference_map[key]
            if absolute:
                return '/' + new_key + suffix
            relative = posixpath.relpath(new_key, posixpath.dirname(source) or '.')
            return relative + suffix

        if key == '.' or (not key.startswith('..') and (self.root / key).exists()):
            return url
        raise UnresolvedReferenceError(source, url)
