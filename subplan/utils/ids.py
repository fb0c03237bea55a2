"""
Identifier and slug generation
"""
import re
import secrets
import string

from subplan.config import get_settings

ID_ALPHABET = string.digits + string.ascii_uppercase + string.ascii_lowercase


def _random_suffix(length: int) -> str:
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def generate_id(prefix: str) -> str:
    """
    Unique-ish id: "<prefix>-<random>" (e.g. "sub-G7K2aZp9").

    No collision guarantee beyond the size of the random alphabet.
    """
    return f"{prefix}-{_random_suffix(get_settings().ID_LENGTH)}"


def slugify(name: str) -> str:
    text = re.sub(r"[^a-z0-9]+", "-", name.lower())
    return text.strip("-")


def generate_slug(name: str) -> str:
    """URL-friendly slug with a random suffix ("Team Plan" -> "team-plan-X4tF9z")."""
    suffix = _random_suffix(get_settings().SLUG_SUFFIX_LENGTH)
    base = slugify(name)
    return f"{base}-{suffix}" if base else suffix
