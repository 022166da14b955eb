"""Content fingerprints used as the deduplication key.

The algorithm is part of the stored data contract: fingerprints are compared,
never recomputed, so any change here splits old and new reports into
different clusters.

Normalization strips surrounding whitespace before truncating, so a
description whose 200th kept character is whitespace normalizes to a string
that a second pass would shorten. Fingerprints are only ever taken over raw
descriptions, and existing fingerprints depend on this order.
"""

import hashlib
import re

MAX_NORMALIZED_LENGTH = 200

# Whitespace as the stored fingerprints define it: ASCII whitespace, the
# Unicode space separators, the line and paragraph separators, and the BOM.
# str.isspace differs (it adds \x1c-\x1f and \x85 and omits \ufeff), so
# neither \s nor str.strip can be used here.
_WHITESPACE = "\t\n\v\f\r \u00a0\u1680\u2000-\u200a\u2028\u2029\u202f\u205f\u3000\ufeff"

_DISALLOWED_CHARS = re.compile("[^a-z0-9" + _WHITESPACE + "]")
_OUTER_WHITESPACE = re.compile(r"\A[{0}]+|[{0}]+\Z".format(_WHITESPACE))


def normalize_description(description: str) -> str:
    """Lowercase, keep only ``[a-z0-9]`` and whitespace, strip, and cap at 200 characters."""
    normalized = _DISALLOWED_CHARS.sub("", description.lower())
    normalized = _OUTER_WHITESPACE.sub("", normalized)
    return normalized[:MAX_NORMALIZED_LENGTH]


def generate_fingerprint(tenant_id: str, description: str, screen_context: str | None = None) -> str:
    """Return the 64-char SHA-256 hex digest of tenant, normalized text and screen."""
    composed = f"{tenant_id}:{normalize_description(description)}:{screen_context or ''}"
    return hashlib.sha256(composed.encode("utf-8")).hexdigest()
