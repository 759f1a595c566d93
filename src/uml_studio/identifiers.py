import re
from typing import Dict, Iterable, Optional, Set

_NON_SLUG_RE = re.compile(r"[^a-z0-9]+")


def slugify(label: str) -> str:
    """Lowercase ``label`` and collapse everything outside ``[a-z0-9]`` to ``_``.

    Returns an empty string when nothing identifier-safe is left; callers
    decide the fallback.
    """
    return _NON_SLUG_RE.sub("_", str(label or "").lower()).strip("_")


class IdentifierTable:
    """Node-key to identifier map for a single normalization run.

    ``resolve`` hands out the same identifier for the same key and never the
    same identifier for two different keys. Collisions on the base identifier
    are resolved with ``_2``, ``_3``, ... suffixes.
    """

    def __init__(self, reserved: Optional[Iterable[str]] = None) -> None:
        self._ids_by_key: Dict[str, str] = {}
        self._used: Set[str] = set()
        self._placeholder_seq = 0
        for node_id in reserved or []:
            self.reserve(node_id)

    def __contains__(self, key: str) -> bool:
        return key in self._ids_by_key

    def __len__(self) -> int:
        return len(self._ids_by_key)

    @property
    def used_ids(self) -> Set[str]:
        return set(self._used)

    def lookup(self, key: str) -> Optional[str]:
        return self._ids_by_key.get(key)

    def reserve(self, node_id: str) -> None:
        if node_id:
            self._used.add(node_id)

    def next_placeholder(self) -> str:
        self._placeholder_seq += 1
        return f"n{self._placeholder_seq}"

    def slug_or_placeholder(self, label: str) -> str:
        return slugify(label) or self.next_placeholder()

    def resolve(self, key: str, base: str) -> str:
        existing = self._ids_by_key.get(key)
        if existing is not None:
            return existing
        candidate = base
        suffix = 2
        while candidate in self._used:
            candidate = f"{base}_{suffix}"
            suffix += 1
        self._ids_by_key[key] = candidate
        self._used.add(candidate)
        return candidate
