# forecast_reconciliation/core/order_keys.py
import re
from typing import List, Optional

_MONTHS = re.compile(
    r'\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec|january|february|march|april|'
    r'june|july|august|september|october|november|december)\b'
)
_YEAR = re.compile(r'\b20\d{2}\b')
_AFTER_MARKER = re.compile(r'mto[\s:_-]+([a-z\s/]+)')

def extract_mto_collection(program_description: Optional[str], known_collections: List[str]) -> Optional[str]:
    """Extract the make-to-order collection from a purchase-order program description.

    Descriptions look like ``MTO HOXTON FEB 2026`` or ``MTO: VERA``. Known
    collections are tried first; otherwise the words after the marker are
    taken up to the first month name or year.

    Args:
        program_description: Program description of the purchase order
        known_collections: Lowercase collection names to look for first

    Returns:
        Lowercase collection name or None if the order is not make-to-order
    """
    if not program_description:
        return None

    text = program_description.lower()
    if 'mto' not in text:
        return None

    for collection in known_collections:
        if collection in text:
            return collection

    match = _AFTER_MARKER.search(text)
    if not match:
        return None

    extracted = match.group(1).strip()
    for pattern in (_MONTHS, _YEAR):
        found = pattern.search(extracted)
        if found and found.start() > 0:
            extracted = extracted[:found.start()].strip()

    extracted = extracted.rstrip(' ,').strip()
    return extracted or None

def is_excluded_line(sku: Optional[str], value: int, is_sample: bool = False) -> bool:
    """Sample, swatch and zero-value lines never count as real orders."""
    if is_sample or not value:
        return True
    label = (sku or '').lower()
    return 'sample' in label or 'swatch' in label

def format_order_refs(references: List[str], max_length: int = 255) -> Optional[str]:
    """Join contributing order references, truncating with a ``(+N more)`` suffix.

    Args:
        references: Order references (duplicates allowed)
        max_length: Maximum length of the stored value

    Returns:
        Comma-joined references or None if there are none
    """
    unique = sorted({ref.strip() for ref in references if ref and ref.strip()})
    if not unique:
        return None

    joined = ', '.join(unique)
    if len(joined) <= max_length:
        return joined

    kept = []
    for index, ref in enumerate(unique):
        remaining = len(unique) - index - 1
        candidate = ', '.join(kept + [ref]) + (f" (+{remaining} more)" if remaining else '')
        if len(candidate) > max_length:
            break
        kept.append(ref)

    if not kept:
        return unique[0][:max_length]

    suffix = f" (+{len(unique) - len(kept)} more)"
    return ', '.join(kept) + suffix
