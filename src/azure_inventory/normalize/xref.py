from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Optional, Sequence, Union

MISSING = "-"

KeyExtractor = Callable[[Dict[str, Any]], Union[str, Iterable[str], None]]
ValueExtractor = Callable[[Dict[str, Any]], Optional[str]]


def _norm_key(key: Any) -> str:
    return str(key or "").strip().casefold()


class CrossReferenceIndex:
    """
    Lookup table built from one resource collection to resolve references found
    while normalizing another (NIC name -> VM name, IP group id -> group name).

    Keys are matched case-insensitively, as ARM names are. A missing reference is
    a normal condition: lookup returns "-" instead of raising.
    """

    def __init__(self, entries: Optional[Dict[str, str]] = None) -> None:
        self._entries: Dict[str, str] = {}
        for key, value in (entries or {}).items():
            self._entries[_norm_key(key)] = value

    @classmethod
    def build(
        cls,
        collection: Sequence[Dict[str, Any]],
        key_extractor: KeyExtractor,
        value_extractor: ValueExtractor,
    ) -> "CrossReferenceIndex":
        index = cls()
        for item in collection:
            keys = key_extractor(item)
            if keys is None:
                continue
            if isinstance(keys, str):
                keys = [keys]
            value = value_extractor(item)
            if not value:
                continue
            for key in keys:
                normalized = _norm_key(key)
                if normalized:
                    # first writer wins so ordering of the source collection decides
                    index._entries.setdefault(normalized, str(value))
        return index

    def lookup(self, key: Any) -> str:
        return self._entries.get(_norm_key(key), MISSING)

    def __contains__(self, key: object) -> bool:
        return _norm_key(key) in self._entries

    def __len__(self) -> int:
        return len(self._entries)
