"""Storage keys for uploaded capture files.

Keys group files by record category and record date:
``{category}/{yyyy}/{mm}/{dd}/user_{id}_{token}{ext}``.
"""

import secrets
from datetime import date
from pathlib import PurePath

BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
TOKEN_LENGTH = 24


def random_token(length: int = TOKEN_LENGTH) -> str:
    """Cryptographically random base58 string."""
    return "".join(secrets.choice(BASE58_ALPHABET) for _ in range(length))


def build_storage_key(
    category: str, on_date: date, user_id: int | str, filename: str
) -> str:
    """Build the storage key for a file attached to a dated record.

    Args:
        category: Record collection, e.g. ``"invoices"``.
        on_date: The record's date (not the upload date).
        user_id: Owner of the record.
        filename: Original or suggested file name; only its extension is kept.

    Returns:
        The storage key.

    Raises:
        ValueError: If ``category`` is empty or contains a slash.
    """
    if not category or "/" in category:
        raise ValueError(f"Invalid storage category: {category!r}")
    extension = PurePath(filename).suffix
    return (
        f"{category}/{on_date.year}/{on_date.month:02d}/{on_date.day:02d}/"
        f"user_{user_id}_{random_token()}{extension}"
    )
