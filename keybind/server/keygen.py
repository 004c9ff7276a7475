"""
License key generation, canonicalization and masking.
"""

from __future__ import annotations

import logging
import secrets

from keybind.common.config import Config

logger = logging.getLogger(__name__)

MASK = "****"


def canonicalize_key(key: str) -> str:
    """Keys are looked up trimmed and uppercased."""
    return key.strip().upper()


def mask_license_key(key: str) -> str:
    """Hide the middle segments of a key, e.g. NTRS-AB12-****-****-GH78."""
    parts = key.split("-")
    if len(parts) >= 5:  # noqa: PLR2004
        return f"{parts[0]}-{parts[1]}-{MASK}-{MASK}-{parts[4]}"
    return key[:8] + MASK


class KeyGenerator:
    """Key generator for human-typeable license keys.

    Keys look like ``PREFIX-XXXX-XXXX-XXXX-XXXX``. Uniqueness is not checked
    here; the license store rejects duplicates on insert.
    """

    def __init__(
        self,
        prefix: str | None = None,
        alphabet: str | None = None,
        segments: int | None = None,
        segment_length: int | None = None,
    ):
        config = Config()
        self.prefix = prefix or config.KEY_PREFIX
        self.alphabet = alphabet or config.KEY_ALPHABET
        self.segments = segments or config.KEY_SEGMENTS
        self.segment_length = segment_length or config.KEY_SEGMENT_LENGTH

    def _segment(self) -> str:
        return "".join(
            secrets.choice(self.alphabet) for _ in range(self.segment_length)
        )

    def generate_key(self) -> str:
        """Generate a single license key."""
        segments = [self._segment() for _ in range(self.segments)]
        key = "-".join([self.prefix, *segments])
        logger.debug("Generated license key %s", mask_license_key(key))
        return key


def generate_license_key(prefix: str | None = None) -> str:
    """Generate one key with the configured format and the given prefix."""
    return KeyGenerator(prefix=prefix).generate_key()
