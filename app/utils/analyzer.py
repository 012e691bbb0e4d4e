from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

from app.models.entry import EntryInDB, EntryType
from app.utils.dates import ReportPeriod, year_window


@dataclass
class Summary:
    """Income, expense and balance over a set of entries."""

    total_income: float = 0
    total_expense: float = 0
    balance: float = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalIncome": self.total_income,
            "totalExpense": self.total_expense,
            "balance": self.balance,
        }


@dataclass
class CategoryStat:
    total: float = 0
    count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"total": self.total, "count": self.count}


@dataclass
class MonthlySlot:
    month: int
    total_income: float = 0
    total_expense: float = 0
    balance: float = 0

    def add(self, entry: EntryInDB) -> None:
        if entry.type == EntryType.INCOME:
            self.total_income += entry.amount
        elif entry.type == EntryType.EXPENSE:
            self.total_expense += entry.amount
        self.balance = self.total_income - self.total_expense

    def to_dict(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "totalIncome": self.total_income,
            "totalExpense": self.total_expense,
            "balance": self.balance,
        }


@dataclass
class PeriodReport:
    start_date: str
    end_date: str
    summary: Summary

    def to_dict(self) -> Dict[str, Any]:
        return {"startDate": self.start_date, "endDate": self.end_date, **self.summary.to_dict()}


class LedgerAnalyzer:
    """
    Pure aggregation helpers used by the finance routes.

    Every method folds an entry iterable into a fresh result; nothing is kept
    between calls and the input order does not matter.
    """

    def summary(self, entries: Iterable[EntryInDB]) -> Summary:
        total_income = 0
        total_expense = 0
        for entry in entries:
            if entry.type == EntryType.INCOME:
                total_income += entry.amount
            elif entry.type == EntryType.EXPENSE:
                total_expense += entry.amount
        return Summary(
            total_income=total_income,
            total_expense=total_expense,
            balance=total_income - total_expense,
        )

    def category_stats(self, entries: Iterable[EntryInDB]) -> Dict[str, CategoryStat]:
        # only categories that actually occur are reported
        stats: Dict[str, CategoryStat] = {}
        for entry in entries:
            stat = stats.setdefault(entry.category.value, CategoryStat())
            stat.total += entry.amount
            stat.count += 1
        return stats

    def monthly_stats(self, entries: Iterable[EntryInDB], year: int) -> List[MonthlySlot]:
        """
        Twelve slots, January first, whatever the data looks like. Entries
        outside the calendar year are ignored; the month is the UTC month of
        ``created_at``.
        """
        start, end = year_window(year)
        slots = [MonthlySlot(month=month) for month in range(1, 13)]
        for entry in entries:
            if not start <= entry.created_at < end:
                continue
            slots[entry.created_at.month - 1].add(entry)
        return slots

    def period_report(self, entries: Iterable[EntryInDB], period: ReportPeriod) -> PeriodReport:
        selected = [entry for entry in entries if period.contains(entry.created_at)]
        return PeriodReport(
            start_date=period.start_raw,
            end_date=period.end_raw,
            summary=self.summary(selected),
        )
