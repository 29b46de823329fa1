# forecast_reconciliation/core/vendor_resolution.py
"""
Vendor identity resolution.

A forecast row names its vendor by an external code and a free-text name.
Resolution runs an ordered chain of strategies; the first one that finds a
vendor wins.
"""
import re
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple

_PUNCTUATION = re.compile(r'[^a-z0-9]+')

def normalize_name(name: Optional[str]) -> str:
    """Lowercase a vendor name and collapse punctuation and whitespace to single spaces."""
    if not name:
        return ''
    return _PUNCTUATION.sub(' ', name.lower()).strip()

@dataclass
class VendorEntry:
    vendor_id: int
    vendor_code: Optional[str]
    name: str
    aliases: List[str] = field(default_factory=list)

    def names(self) -> List[str]:
        return [self.name] + list(self.aliases)

class VendorIndex:
    """In-memory lookup over known vendors and their recorded aliases."""

    def __init__(self, entries: Iterable[VendorEntry]):
        self.entries = list(entries)
        self._by_code = {}
        self._by_name = {}
        self._by_normalized = {}

        for entry in self.entries:
            if entry.vendor_code:
                self._by_code.setdefault(entry.vendor_code.strip().upper(), entry)
            for name in entry.names():
                if not name:
                    continue
                self._by_name.setdefault(name.strip().lower(), entry)
                normalized = normalize_name(name)
                if normalized:
                    self._by_normalized.setdefault(normalized, entry)

    def __len__(self):
        return len(self.entries)

    def by_code(self, code: Optional[str]) -> Optional[VendorEntry]:
        if not code:
            return None
        return self._by_code.get(code.strip().upper())

    def by_name(self, name: Optional[str]) -> Optional[VendorEntry]:
        if not name:
            return None
        return self._by_name.get(name.strip().lower())

    def by_normalized_name(self, name: Optional[str]) -> Optional[VendorEntry]:
        normalized = normalize_name(name)
        if not normalized:
            return None
        return self._by_normalized.get(normalized)

    def by_containment(self, name: Optional[str]) -> Optional[VendorEntry]:
        """Find a vendor whose normalized name contains, or is contained in, the given name.

        Ties go to the longest known name so "Acme Home" beats "Acme" for
        "Acme Home Ltd".
        """
        normalized = normalize_name(name)
        if len(normalized) < 3:
            return None

        best = None
        best_length = 0
        for known, entry in self._by_normalized.items():
            if len(known) < 3:
                continue
            if known in normalized or normalized in known:
                if len(known) > best_length:
                    best = entry
                    best_length = len(known)
        return best

# Strategy: (label, lookup(index, vendor_code, vendor_name))
ResolutionStrategy = Tuple[str, Callable[[VendorIndex, Optional[str], Optional[str]], Optional[VendorEntry]]]

RESOLUTION_CHAIN: List[ResolutionStrategy] = [
    ('code', lambda index, code, name: index.by_code(code)),
    ('exact_name', lambda index, code, name: index.by_name(name)),
    ('normalized_name', lambda index, code, name: index.by_normalized_name(name)),
    ('containment', lambda index, code, name: index.by_containment(name)),
]

def resolve_vendor(
    index: VendorIndex,
    vendor_code: Optional[str],
    vendor_name: Optional[str],
    chain: List[ResolutionStrategy] = None
) -> Tuple[Optional[VendorEntry], Optional[str]]:
    """Resolve a vendor code/name pair against the index.

    Args:
        index: Known-vendor index
        vendor_code: External vendor code from the row
        vendor_name: Vendor name from the row
        chain: Optional strategy chain (defaults to RESOLUTION_CHAIN)

    Returns:
        Tuple with the resolved entry and the strategy label, or (None, None)
    """
    for label, strategy in (chain or RESOLUTION_CHAIN):
        entry = strategy(index, vendor_code, vendor_name)
        if entry is not None:
            return entry, label
    return None, None
