"""Normalized document change events.

Every change source (the in-memory store's commit listener, the MQTT
change feed) converts its input into a :class:`ChangeEvent`. Only the
consumer in :mod:`drivepipe.feed.consumer` routes them to handlers.
"""

from __future__ import annotations

import secrets
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ChangeKind(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


class ChangeEvent(BaseModel):
    """A committed change to one document.

    ``before`` is ``None`` for creations and ``after`` is ``None`` for
    deletions. Delivery is at-least-once: the same ``event_id`` may be seen
    more than once.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    kind: ChangeKind
    path: str = Field(..., description="Document path")
    before: dict[str, Any] | None = None
    after: dict[str, Any] | None = None
    event_id: str = Field(default_factory=lambda: secrets.token_hex(8))
    observed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @field_validator("path")
    @classmethod
    def _normalize_path(cls, value: str) -> str:
        path = value.strip().strip("/")
        if not path:
            raise ValueError("path must be non-empty")
        return path

    @field_validator("observed_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @property
    def document_id(self) -> str:
        return self.path.rsplit("/", 1)[-1]
