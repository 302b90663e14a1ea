from __future__ import annotations

import secrets

from ..core.constants import TEMP_PASSWORD_LENGTH

# No ambiguous characters (0/O, 1/l/I) so passwords can be read aloud.
_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz23456789"
_SYMBOLS = "@#$%"


def generate_temp_password(length: int = TEMP_PASSWORD_LENGTH) -> str:
    if length < 4:
        raise ValueError("length must be >= 4")
    chars = [secrets.choice(_ALPHABET) for _ in range(length - 1)]
    chars.insert(secrets.randbelow(length), secrets.choice(_SYMBOLS))
    return "".join(chars)
