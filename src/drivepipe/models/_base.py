"""Base model for store documents.

Every document model inherits from :class:`DocumentModel` which provides:

* ``alias_generator=to_camel`` so camelCase document keys map
  automatically to snake_case fields.
* A ``model_validator(mode="before")`` that strips placeholder values
  (``None``, ``""``, ``"--"``, NaN) so the field default is used.
  Embedded maps get the same treatment through :class:`NestedModel`.
* A ``raw`` dict that captures the original document.
* :meth:`DocumentModel.from_document` / :meth:`DocumentModel.to_document`
  for the store boundary.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Annotated, Any, Self

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

# Placeholder strings the mobile client writes for "not available".
_SENTINELS = frozenset({"", "--", "NaN", "nan"})


def utcnow() -> datetime:
    return datetime.now(UTC)


def parse_timestamp_text(value: Any) -> str | None:
    """Normalize a document timestamp to an ISO-8601 string.

    Documents written by the client carry ISO strings; in-process writers
    may hand over ``datetime`` objects. Both compare lexicographically
    once normalized, which is what date-range queries rely on.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.isoformat()
    return str(value)


IsoTimestamp = Annotated[str | None, BeforeValidator(parse_timestamp_text)]
"""Annotated type that coerces datetimes to ISO-8601 strings."""


def strip_placeholders(values: dict[str, Any]) -> dict[str, Any]:
    """Drop ``None``, NaN and client placeholder strings from a mapping."""
    cleaned: dict[str, Any] = {}
    for key, value in values.items():
        if value is None:
            continue
        if isinstance(value, str) and value.strip() in _SENTINELS:
            continue
        if isinstance(value, float) and math.isnan(value):
            continue
        cleaned[key] = value
    return cleaned


class NestedModel(BaseModel):
    """Base for maps embedded in a document (no id, no raw stash)."""

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    @model_validator(mode="before")
    @classmethod
    def _clean_nested_values(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        return strip_placeholders(values)


class DocumentModel(BaseModel):
    """Base for store document models.

    Handles:
    * camelCase → snake_case via ``alias_generator=to_camel``
    * placeholder values → dropped so the field default is used
    * stashes the original document in ``raw``
    """

    model_config = ConfigDict(
        frozen=True,
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str | None = Field(default=None, exclude=True)
    """Document id (last path segment); never written back as a field."""

    raw: dict[str, Any] = Field(default_factory=dict, exclude=True)
    """Original document dict."""

    @model_validator(mode="before")
    @classmethod
    def _clean_document_values(cls, values: Any) -> Any:
        """Strip placeholder values and stash the raw document."""
        if not isinstance(values, dict):
            return values
        original = dict(values)
        cleaned = strip_placeholders(original)
        # Only auto-stash raw when not explicitly provided.
        if "raw" not in values:
            cleaned["raw"] = original
        return cleaned

    @classmethod
    def from_document(cls, doc_id: str | None, data: dict[str, Any]) -> Self:
        """Build a model from a stored document."""
        return cls.model_validate({**data, "id": doc_id})

    def to_document(self) -> dict[str, Any]:
        """Dump the model as a camelCase document, omitting unset fields."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
