"""ID generation for domain objects and wire documents."""

from __future__ import annotations

import random
import string
import time
from uuid import uuid4

_ALPHABET = string.ascii_lowercase + string.digits


def new_id() -> str:
    """Generate a new random UUID v4 string."""
    return str(uuid4())


def prefixed_id(prefix: str, rng: random.Random | None = None) -> str:
    """Return ``<prefix>_<epoch-ms>_<9 random chars>``, e.g. ``auto_1700000000000_k3j9x0a1b``."""
    pick = rng or random
    suffix = "".join(pick.choice(_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"
