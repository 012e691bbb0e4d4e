"""
Selection predicates over ledger entries.

A Predicate is an immutable conjunction of tagged clauses, one dataclass per
filter kind. The same predicate is evaluated in memory through ``matches`` and
compiled into DynamoDB conditions by ``app.db.dynamo``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from datetime import datetime
from typing import Optional, Tuple, Type, Union

from app.core.errors import ValidationError
from app.models.entry import EntryInDB, EntryType
from app.utils.dates import (
    month_window,
    parse_amount,
    parse_month,
    parse_timestamp,
    parse_year,
    utcnow,
    year_window,
)

logger = logging.getLogger(__name__)

WINDOW_CALENDAR = "calendar"
WINDOW_EXPLICIT = "explicit"


@dataclass(frozen=True)
class OwnerEquals:
    owner: str

    def matches(self, entry: EntryInDB) -> bool:
        return entry.owner == self.owner


@dataclass(frozen=True)
class TypeEquals:
    value: EntryType

    def matches(self, entry: EntryInDB) -> bool:
        return entry.type == self.value


@dataclass(frozen=True)
class CategoryEquals:
    value: str

    def matches(self, entry: EntryInDB) -> bool:
        return entry.category.value == self.value


@dataclass(frozen=True)
class AmountRange:
    """Inclusive on both ends; a missing bound is unbounded."""

    minimum: Optional[float] = None
    maximum: Optional[float] = None

    def matches(self, entry: EntryInDB) -> bool:
        if self.minimum is not None and entry.amount < self.minimum:
            return False
        if self.maximum is not None and entry.amount > self.maximum:
            return False
        return True


@dataclass(frozen=True)
class CreatedAtRange:
    """
    Bound on ``created_at``. The start is always inclusive. Calendar windows
    (year/month) are half-open, explicit startDate/endDate windows are closed.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    end_inclusive: bool = False
    source: str = WINDOW_CALENDAR

    def matches(self, entry: EntryInDB) -> bool:
        created = entry.created_at
        if self.start is not None and created < self.start:
            return False
        if self.end is not None:
            if self.end_inclusive and created > self.end:
                return False
            if not self.end_inclusive and created >= self.end:
                return False
        return True


@dataclass(frozen=True)
class KeywordMatch:
    """Case-insensitive literal substring match against title OR category."""

    keyword: str

    @property
    def needle(self) -> str:
        return self.keyword.lower()

    def matches(self, entry: EntryInDB) -> bool:
        return self.needle in entry.title.lower() or self.needle in entry.category.value.lower()


Clause = Union[OwnerEquals, TypeEquals, CategoryEquals, AmountRange, CreatedAtRange, KeywordMatch]


@dataclass(frozen=True)
class Predicate:
    """Conjunction of clauses; the first clause is always OwnerEquals."""

    clauses: Tuple[Clause, ...]

    @property
    def owner(self) -> str:
        return self.clauses[0].owner

    def find(self, kind: Type[Clause]) -> Optional[Clause]:
        for clause in self.clauses:
            if isinstance(clause, kind):
                return clause
        return None

    def matches(self, entry: EntryInDB) -> bool:
        return all(clause.matches(entry) for clause in self.clauses)


@dataclass(frozen=True)
class PredicateBuilder:
    """Immutable builder: every ``where`` returns a new builder."""

    owner: str
    clauses: Tuple[Clause, ...] = ()

    def where(self, clause: Clause) -> "PredicateBuilder":
        if isinstance(clause, OwnerEquals):
            raise ValueError("owner is fixed when the builder is created")
        if any(type(existing) is type(clause) for existing in self.clauses):
            raise ValueError(f"{type(clause).__name__} already present")
        return PredicateBuilder(owner=self.owner, clauses=self.clauses + (clause,))

    def build(self) -> Predicate:
        return Predicate(clauses=(OwnerEquals(self.owner),) + self.clauses)


@dataclass(frozen=True)
class FilterParams:
    """Raw, optional filter values as received from the query string."""

    type: Optional[str] = None
    year: Optional[str] = None
    month: Optional[str] = None
    keyword: Optional[str] = None
    category: Optional[str] = None
    min_amount: Optional[str] = None
    max_amount: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None

    def __post_init__(self):
        # blank query values count as absent
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None and not str(value).strip():
                object.__setattr__(self, f.name, None)


def parse_entry_type(value: str) -> EntryType:
    try:
        return EntryType(value)
    except ValueError:
        raise ValidationError("type", "type must be income or expense")


def calendar_window(params: FilterParams, today: Optional[datetime] = None) -> Optional[CreatedAtRange]:
    if params.year is None and params.month is None:
        return None

    if params.year is not None:
        year = parse_year(params.year)
    else:
        year = (today or utcnow()).year

    if params.month is not None:
        start, end = month_window(year, parse_month(params.month))
    else:
        start, end = year_window(year)
    return CreatedAtRange(start=start, end=end, end_inclusive=False, source=WINDOW_CALENDAR)


def explicit_window(params: FilterParams) -> Optional[CreatedAtRange]:
    if params.start_date is None and params.end_date is None:
        return None

    start = parse_timestamp(params.start_date, "startDate") if params.start_date is not None else None
    end = parse_timestamp(params.end_date, "endDate") if params.end_date is not None else None
    return CreatedAtRange(start=start, end=end, end_inclusive=True, source=WINDOW_EXPLICIT)


def resolve_created_window(params: FilterParams, today: Optional[datetime] = None) -> Optional[CreatedAtRange]:
    """
    Pick the createdAt bound for a filter request.

    Both windows are parsed so malformed values are always reported. When an
    explicit startDate/endDate is given it replaces the year/month window
    instead of intersecting with it.
    """
    calendar = calendar_window(params, today)
    explicit = explicit_window(params)

    if explicit is not None:
        if calendar is not None:
            logger.debug("startDate/endDate override the year/month window")
        return explicit
    return calendar


def amount_range(params: FilterParams) -> Optional[AmountRange]:
    if params.min_amount is None and params.max_amount is None:
        return None

    minimum = parse_amount(params.min_amount, "minAmount") if params.min_amount is not None else None
    maximum = parse_amount(params.max_amount, "maxAmount") if params.max_amount is not None else None
    return AmountRange(minimum=minimum, maximum=maximum)


def build_filter_predicate(owner: str, params: FilterParams, today: Optional[datetime] = None) -> Predicate:
    builder = PredicateBuilder(owner)

    if params.type is not None:
        builder = builder.where(TypeEquals(parse_entry_type(params.type)))

    if params.category is not None:
        builder = builder.where(CategoryEquals(params.category))

    window = resolve_created_window(params, today)
    if window is not None:
        builder = builder.where(window)

    amounts = amount_range(params)
    if amounts is not None:
        builder = builder.where(amounts)

    if params.keyword is not None:
        builder = builder.where(KeywordMatch(params.keyword))

    return builder.build()


def owner_predicate(owner: str) -> Predicate:
    return PredicateBuilder(owner).build()


def year_predicate(owner: str, year: int) -> Predicate:
    start, end = year_window(year)
    return PredicateBuilder(owner).where(CreatedAtRange(start=start, end=end)).build()


def period_predicate(owner: str, start: datetime, end: datetime) -> Predicate:
    window = CreatedAtRange(start=start, end=end, end_inclusive=True, source=WINDOW_EXPLICIT)
    return PredicateBuilder(owner).where(window).build()
