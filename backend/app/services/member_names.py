"""Canonical member names and alias expansion."""

from typing import Dict, List, Optional

from app.config import settings


def _lookup_key(value: str) -> str:
    return " ".join(value.split()).lower()


class MemberNameResolver:
    """
    Maps raw member spellings onto one canonical display name.

    Aliases come from MEMBER_ALIASES ({"Rahman": "Rehman"}); matching is
    case- and whitespace-insensitive.
    """

    def __init__(self, aliases: Optional[Dict[str, str]] = None):
        aliases = settings.member_aliases_map if aliases is None else aliases
        self._canonical_by_key: Dict[str, str] = {}
        self._aliases_by_canonical: Dict[str, List[str]] = {}
        for alias, canonical in aliases.items():
            self._canonical_by_key[_lookup_key(alias)] = canonical
            self._canonical_by_key[_lookup_key(canonical)] = canonical
            spellings = self._aliases_by_canonical.setdefault(canonical, [canonical])
            if alias not in spellings:
                spellings.append(alias)

    def canonicalize(self, value: str) -> str:
        trimmed = " ".join((value or "").split())
        if not trimmed:
            return ""
        return self._canonical_by_key.get(_lookup_key(trimmed), trimmed)

    def expand_aliases(self, value: str) -> List[str]:
        """Every stored spelling of a member, canonical name first."""
        canonical = self.canonicalize(value)
        if not canonical:
            return []
        return list(dict.fromkeys(self._aliases_by_canonical.get(canonical, [canonical])))

    def names_match(self, a: str, b: str) -> bool:
        if not (a or "").strip() or not (b or "").strip():
            return False
        return _lookup_key(self.canonicalize(a)) == _lookup_key(self.canonicalize(b))
