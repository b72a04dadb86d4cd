"""Opaque identifier generation."""

import secrets
import string

ID_ALPHABET = string.ascii_letters + string.digits


def generate_id(length: int = 12) -> str:
    """Generate a random opaque id drawn from ``A-Z a-z 0-9``."""
    return ''.join(secrets.choice(ID_ALPHABET) for _ in range(length))
