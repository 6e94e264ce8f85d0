"""Row-key fingerprinting, coercion and intra-batch deduplication"""

from .fingerprint import canonical_value, fingerprint, fingerprint_frame, is_missing
from .coercion import coerce_frame
from .deduplicate import deduplicate

__all__ = [
    'canonical_value', 'fingerprint', 'fingerprint_frame', 'is_missing',
    'coerce_frame', 'deduplicate'
]
