"""Short identifier generation.

Identifiers are drawn from the 64-symbol URL-safe alphabet with nanoid, which
reads from ``os.urandom``. At the default length of 8 the space is 2^48, so
collisions are rare but possible; ``LinkCreationService`` retries on them.
"""

import re

from nanoid import generate

from sharelinks.config import get_settings

__all__ = ["SHORT_ID_ALPHABET", "generate_short_id", "is_well_formed"]

SHORT_ID_ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz_-"
MIN_SHORT_ID_LENGTH = 6
MAX_SHORT_ID_LENGTH = 10

_SHORT_ID_PATTERN = re.compile(rf"[A-Za-z0-9_-]{{{MIN_SHORT_ID_LENGTH},{MAX_SHORT_ID_LENGTH}}}")


def generate_short_id(length: int | None = None) -> str:
    if length is None:
        length = get_settings().SHORT_ID_LENGTH
    assert MIN_SHORT_ID_LENGTH <= length <= MAX_SHORT_ID_LENGTH, (
        f"length must be in {MIN_SHORT_ID_LENGTH}..{MAX_SHORT_ID_LENGTH}, got {length!r}"
    )
    return generate(SHORT_ID_ALPHABET, length)


def is_well_formed(short_id: str) -> bool:
    """Return False for identifiers no generator could have produced."""
    return bool(_SHORT_ID_PATTERN.fullmatch(short_id))
