from dataclasses import dataclass
from typing import Union

from app.core.errors import NotFoundOrUnauthorized
from app.models.entry import EntryInDB


@dataclass(frozen=True)
class Owned:
    entry: EntryInDB


@dataclass(frozen=True)
class NotFoundOrForbidden:
    entry_id: str


OwnershipResult = Union[Owned, NotFoundOrForbidden]


def check_ownership(store, entry_id: str, owner: str) -> OwnershipResult:
    """
    Look up an entry on behalf of ``owner``. Missing and foreign entries give
    the same result so callers cannot tell them apart.
    """
    entry = store.find_by_id(entry_id)
    if entry is None or entry.owner != owner:
        return NotFoundOrForbidden(entry_id=entry_id)
    return Owned(entry=entry)


def require_owned(store, entry_id: str, owner: str) -> EntryInDB:
    result = check_ownership(store, entry_id, owner)
    if isinstance(result, NotFoundOrForbidden):
        raise NotFoundOrUnauthorized(entry_id)
    return result.entry
