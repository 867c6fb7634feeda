"""Prefix trie used to narrow glob lookups.

Every glob has a static directory prefix ("app/styles/" for
"app/styles/*.less"). The registry stores each transform under the prefixes
of its globs; a changed path then only needs to be tested against the globs
found along its own directory chain.
"""

from dataclasses import dataclass, field
from typing import Dict, Generic, List, TypeVar

T = TypeVar('T')


@dataclass
class TrieNode(Generic[T]):
    """Node in a prefix trie.

    Attributes:
        children: Child nodes keyed by path component.
        values: Values registered exactly at this prefix, in insertion order.
    """
    children: Dict[str, 'TrieNode[T]'] = field(default_factory=dict)
    values: List[T] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return bool(self.values)


class PrefixTrie(Generic[T]):
    """Trie keyed by path components, holding several values per prefix.

    Example:
        trie = PrefixTrie()
        trie.insert("app/styles/", "less")
        trie.insert("app/", "copy:html")
        trie.insert("app/styles/", "recess")

        trie.find_all_prefixes("app/styles/main.less")
        # ["copy:html", "less", "recess"]
    """

    def __init__(self, separator: str = '/'):
        self._root: TrieNode[T] = TrieNode()
        self._separator = separator

    def insert(self, prefix: str, value: T) -> None:
        """Register value under prefix. Inserting the same pair twice is a no-op."""
        node = self._root
        for part in self._split(prefix):
            if part not in node.children:
                node.children[part] = TrieNode()
            node = node.children[part]
        if value not in node.values:
            node.values.append(value)

    def find_all_prefixes(self, key: str) -> List[T]:
        """Return values of every registered prefix of key.

        Ordered from shortest to longest prefix, then insertion order. The
        empty prefix matches every key.
        """
        node = self._root
        results: List[T] = list(node.values)
        for part in self._split(key):
            if part not in node.children:
                break
            node = node.children[part]
            results.extend(node.values)
        return results

    def contains(self, prefix: str) -> bool:
        """Check if an exact prefix holds any value."""
        node = self._root
        for part in self._split(prefix):
            if part not in node.children:
                return False
            node = node.children[part]
        return node.is_terminal

    def __len__(self) -> int:
        count = 0
        stack = [self._root]
        while stack:
            node = stack.pop()
            count += len(node.values)
            stack.extend(node.children.values())
        return count

    def _split(self, path: str) -> List[str]:
        return [p for p in path.split(self._separator) if p]
