from datetime import UTC, datetime
from typing import Annotated, ClassVar

from pydantic import AfterValidator, BaseModel, ConfigDict


def utcnow() -> datetime:
    return datetime.now(UTC)


def _ensure_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UtcDatetime = Annotated[datetime, AfterValidator(_ensure_utc)]


class Entity(BaseModel):
    """A stored record addressed by ``(kind, id)`` and guarded by an optimistic ``rev`` token.

    ``rev`` is ``None`` until the entity has been written once; storage adapters
    refuse a write whose ``rev`` no longer matches the stored one.
    """

    kind: ClassVar[str]

    id: str
    rev: str | None = None

    model_config = ConfigDict(use_enum_values=True, validate_default=True, from_attributes=True)
