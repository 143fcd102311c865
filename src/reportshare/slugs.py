"""Slug generation for uploaded files.

Two strategies exist: a readable slug derived from the filename with a
numeric suffix on collision, and a short random slug.  Both take an
``exists`` callable so the storage backend stays the single source of truth
for which slugs are taken.
"""
import re
import secrets
import time
from collections.abc import Callable

DEFAULT_SLUG = "document"
MAX_SLUG_LENGTH = 50

RANDOM_ALPHABET = "abcdefghijkmnpqrstuvwxyz23456789"
RANDOM_SLUG_LENGTH = 6
RANDOM_SLUG_ATTEMPTS = 10

_EXTENSION_RE = re.compile(r"\.(pdf|xlsx|xls)$", re.IGNORECASE)
_DISALLOWED_RE = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_HYPHENS_RE = re.compile(r"-+")


def slugify(filename: str) -> str:
    slug = _EXTENSION_RE.sub("", filename).lower().strip()
    slug = _DISALLOWED_RE.sub("", slug)
    slug = _WHITESPACE_RE.sub("-", slug)
    slug = _HYPHENS_RE.sub("-", slug).strip("-")
    slug = slug[:MAX_SLUG_LENGTH].rstrip("-")
    return slug or DEFAULT_SLUG


def allocate_unique_slug(base: str, exists: Callable[[str], bool]) -> str:
    slug = base
    counter = 2
    while exists(slug):
        slug = f"{base}-{counter}"
        counter += 1
    return slug


def _random_token(length: int) -> str:
    return "".join(secrets.choice(RANDOM_ALPHABET) for _ in range(length))


def _base36(number: int) -> str:
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    out = ""
    while True:
        number, rem = divmod(number, 36)
        out = digits[rem] + out
        if number == 0:
            return out


def random_slug(
    exists: Callable[[str], bool],
    length: int = RANDOM_SLUG_LENGTH,
    attempts: int = RANDOM_SLUG_ATTEMPTS,
) -> str:
    for _ in range(attempts):
        slug = _random_token(length)
        if not exists(slug):
            return slug
    # composite fallback: random part + millisecond timestamp
    return f"{_random_token(length)}-{_base36(time.time_ns() // 1_000_000)}"
