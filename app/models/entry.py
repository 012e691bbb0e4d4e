from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.utils.dates import utcnow


class EntryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"


class EntryCategory(str, Enum):
    SALARY = "salary"
    EDUCATION = "education"
    HEALTH = "health"
    FOOD = "food"
    TRANSPORTATION = "transportation"
    ENTERTAINMENT = "entertainment"
    UTILITIES = "utilities"
    OTHERS = "others"


# Fields a client may set; owner and timestamps are never client controlled.
MUTABLE_FIELDS = ("title", "amount", "type", "category")


def _clean_title(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("title must not be empty")
    return value


class EntryCreate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str
    amount: float = Field(ge=0, allow_inf_nan=False)
    type: EntryType
    category: EntryCategory

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: str) -> str:
        return _clean_title(value)


class EntryUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    amount: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    type: Optional[EntryType] = None
    category: Optional[EntryCategory] = None

    @field_validator("title")
    @classmethod
    def strip_title(cls, value: Optional[str]) -> Optional[str]:
        return _clean_title(value) if value is not None else value

    @field_validator("title", "amount", "type", "category", mode="before")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("field may be omitted but not set to null")
        return value

    def changes(self) -> dict:
        """Only the fields the client actually sent."""
        return self.model_dump(exclude_unset=True)


class EntryInDB(BaseModel):
    entry_id: str = Field(default_factory=lambda: uuid4().hex)
    owner: str
    title: str
    amount: float
    type: EntryType
    category: EntryCategory
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("created_at", "updated_at")
    @classmethod
    def as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class EntryPublic(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    owner: str
    title: str
    amount: float
    type: EntryType
    category: EntryCategory
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    @classmethod
    def from_entry(cls, entry: EntryInDB) -> "EntryPublic":
        return cls(
            id=entry.entry_id,
            owner=entry.owner,
            title=entry.title,
            amount=entry.amount,
            type=entry.type,
            category=entry.category,
            created_at=entry.created_at,
            updated_at=entry.updated_at,
        )
