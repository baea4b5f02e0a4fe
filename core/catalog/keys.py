"""Storage key layout.

Keys look like ``[client_<owner>/]<category>/<timestamp>_<sanitized name>``.
The sanitized name only keeps ASCII so the backend never has to encode the
path; the original filename lives in the index row.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from schemas.imports import DocumentCategory

OWNER_DIR_PREFIX = "client_"
FALLBACK_NAME = "file"

_CATEGORY_VALUES = {category.value for category in DocumentCategory}


@dataclass(frozen=True)
class ParsedStorageKey:
    owner_id: str | None
    category: DocumentCategory
    leaf: str


def sanitize_display_name(display_name: str) -> str:
    ascii_only = display_name.encode("ascii", "ignore").decode("ascii")
    cleaned = "".join(
        "_" if char in "/\\" or ord(char) < 32 or ord(char) == 127 else char
        for char in ascii_only
    ).strip()
    return cleaned or FALLBACK_NAME


def storage_timestamp(moment: datetime) -> str:
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H-%M-%S-") + f"{moment.microsecond // 1000:03d}Z"


def validate_owner_id(owner_id: str | None) -> None:
    """Raise ValueError for an owner id that cannot be used as a key segment; None is the global scope."""
    if owner_id is None:
        return
    if not owner_id or "/" in owner_id:
        raise ValueError(f"Invalid owner id '{owner_id}'")


def scope_prefix(category: DocumentCategory, owner_id: str | None = None) -> str:
    if owner_id is None:
        return f"{category.value}/"
    validate_owner_id(owner_id)
    return f"{OWNER_DIR_PREFIX}{owner_id}/{category.value}/"


def build_storage_key(
    *,
    category: DocumentCategory,
    owner_id: str | None,
    display_name: str,
    moment: datetime | None = None,
) -> str:
    moment = moment or datetime.now(timezone.utc)
    leaf = f"{storage_timestamp(moment)}_{sanitize_display_name(display_name)}"
    return f"{scope_prefix(category, owner_id)}{leaf}"


def with_copy_suffix(storage_key: str, copy_number: int) -> str:
    """``a/2024-..._nota.pdf`` becomes ``a/2024-..._nota_1.pdf`` for ``copy_number=1``."""
    head, slash, leaf = storage_key.rpartition("/")
    stem, dot, extension = leaf.rpartition(".")
    if not dot:
        stem, extension = leaf, ""
    return f"{head}{slash}{stem}_{copy_number}{dot}{extension}"


def parse_storage_key(storage_key: str) -> ParsedStorageKey | None:
    """Return the owner/category/leaf encoded in a key, or None for foreign keys."""
    parts = storage_key.split("/")
    if len(parts) == 2 and parts[0] in _CATEGORY_VALUES and parts[1]:
        return ParsedStorageKey(owner_id=None, category=DocumentCategory(parts[0]), leaf=parts[1])

    if (
        len(parts) == 3
        and parts[0].startswith(OWNER_DIR_PREFIX)
        and len(parts[0]) > len(OWNER_DIR_PREFIX)
        and parts[1] in _CATEGORY_VALUES
        and parts[2]
    ):
        return ParsedStorageKey(
            owner_id=parts[0][len(OWNER_DIR_PREFIX):],
            category=DocumentCategory(parts[1]),
            leaf=parts[2],
        )
    return None
