"""Path matching for transform inputs.

- GlobPattern: compiled glob with '**' and '{a,b}' support
- PrefixTrie: index of static glob prefixes for fast path-to-transform lookup
"""

from .globs import GlobPattern, compile_all, extract_static_prefix, glob_all, match_any
from .trie import PrefixTrie, TrieNode

__all__ = [
    'GlobPattern',
    'compile_all',
    'extract_static_prefix',
    'glob_all',
    'match_any',
    'PrefixTrie',
    'TrieNode',
]
