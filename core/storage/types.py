from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class StorageBackend(str, Enum):
    LOCAL = "local"
    S3 = "s3"


class ContainerCreation(str, Enum):
    CREATED = "created"
    ALREADY_EXISTS = "already_exists"


@dataclass(frozen=True)
class ContainerInfo:
    name: str
    public: bool | None = None


@dataclass(frozen=True)
class StoredObject:
    key: str
    size: int
    created_at: datetime | None = None
