import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.core import errors
from app.core.security import get_current_user_id
from app.db.dynamo import EntryStore, get_entry_store
from app.models.entry import EntryCreate, EntryInDB, EntryPublic, EntryUpdate
from app.utils.analyzer import LedgerAnalyzer
from app.utils.dates import parse_report_period, parse_year
from app.utils.ownership import require_owned
from app.utils.predicate import (
    FilterParams,
    build_filter_predicate,
    owner_predicate,
    period_predicate,
    year_predicate,
)

router = APIRouter()
logger = logging.getLogger(__name__)
ledger_analyzer = LedgerAnalyzer()


def _bad_request(error: errors.ValidationError) -> HTTPException:
    logger.info(f"Rejected request: {error.field}: {error.message}")
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.message)


def _not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=errors.NOT_FOUND_DETAIL)


def _server_error(action: str, error: Exception) -> HTTPException:
    # details stay in the log, callers get the generic message
    logger.error(f"Failed to {action}: {error}", exc_info=True)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=errors.INTERNAL_ERROR_DETAIL)


@router.get("/", response_model=List[EntryPublic])
def list_entries(
    user_id: str = Depends(get_current_user_id),
    store: EntryStore = Depends(get_entry_store),
):
    try:
        entries = store.find(owner_predicate(user_id))
    except Exception as e:
        raise _server_error("list entries", e)
    return [EntryPublic.from_entry(entry) for entry in entries]


@router.post("/", response_model=EntryPublic, status_code=status.HTTP_201_CREATED)
def create_entry(
    entry: EntryCreate,
    user_id: str = Depends(get_current_user_id),
    store: EntryStore = Depends(get_entry_store),
):
    entry_db = EntryInDB(owner=user_id, **entry.model_dump())
    try:
        store.create(entry_db)
    except Exception as e:
        raise _server_error("create entry", e)
    logger.info(f"Created entry {entry_db.entry_id} for user {user_id}")
    return EntryPublic.from_entry(entry_db)


@router.get("/filter", response_model=List[EntryPublic])
def filter_entries(
    type: Optional[str] = Query(None),
    year: Optional[str] = Query(None),
    month: Optional[str] = Query(None),
    keyword: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    min_amount: Optional[str] = Query(None, alias="minAmount"),
    max_amount: Optional[str] = Query(None, alias="maxAmount"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    user_id: str = Depends(get_current_user_id),
    store: EntryStore = Depends(get_entry_store),
):
    """
    Filtered entries, newest first. startDate/endDate replace any year/month
    window given in the same request.
    """
    params = FilterParams(
        type=type,
        year=year,
        month=month,
        keyword=keyword,
        category=category,
        min_amount=min_amount,
        max_amount=max_amount,
        start_date=start_date,
        end_date=end_date,
    )
    try:
        predicate = build_filter_predicate(user_id, params)
    except errors.ValidationError as e:
        raise _bad_request(e)

    try:
        entries = store.find(predicate, newest_first=True)
    except Exception as e:
        raise _server_error("filter entries", e)
    return [EntryPublic.from_entry(entry) for entry in entries]


@router.get("/summary")
def get_summary(
    user_id: str = Depends(get_current_user_id),
    store: EntryStore = Depends(get_entry_store),
) -> Dict:
    try:
        entries = store.find(owner_predicate(user_id))
        return ledger_analyzer.summary(entries).to_dict()
    except Exception as e:
        raise _server_error("build summary", e)


@router.get("/category-stats")
def get_category_stats(
    user_id: str = Depends(get_current_user_id),
    store: EntryStore = Depends(get_entry_store),
) -> Dict:
    try:
        entries = store.find(owner_predicate(user_id))
        stats = ledger_analyzer.category_stats(entries)
    except Exception as e:
        raise _server_error("build category stats", e)
    return {category: stat.to_dict() for category, stat in stats.items()}


@router.get("/monthly-stats")
def get_monthly_stats(
    year: Optional[str] = Query(None),
    user_id: str = Depends(get_current_user_id),
    store: EntryStore = Depends(get_entry_store),
) -> List[Dict]:
    try:
        if year is None or not year.strip():
            raise errors.ValidationError("year", "year query parameter is required")
        year_value = parse_year(year)
    except errors.ValidationError as e:
        raise _bad_request(e)

    try:
        entries = store.find(year_predicate(user_id, year_value))
        slots = ledger_analyzer.monthly_stats(entries, year_value)
    except Exception as e:
        raise _server_error("build monthly stats", e)
    return [slot.to_dict() for slot in slots]


@router.get("/report")
def get_period_report(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    user_id: str = Depends(get_current_user_id),
    store: EntryStore = Depends(get_entry_store),
) -> Dict:
    try:
        period = parse_report_period(start_date, end_date)
    except errors.ValidationError as e:
        raise _bad_request(e)

    try:
        entries = store.find(period_predicate(user_id, period.start, period.end))
        report = ledger_analyzer.period_report(entries, period)
    except Exception as e:
        raise _server_error("build period report", e)
    return report.to_dict()


@router.get("/{entry_id}", response_model=EntryPublic)
def get_entry(
    entry_id: str,
    user_id: str = Depends(get_current_user_id),
    store: EntryStore = Depends(get_entry_store),
):
    try:
        entry = require_owned(store, entry_id, user_id)
    except errors.NotFoundOrUnauthorized:
        raise _not_found()
    except Exception as e:
        raise _server_error("read entry", e)
    return EntryPublic.from_entry(entry)


@router.put("/{entry_id}", response_model=EntryPublic)
def update_entry(
    entry_id: str,
    entry_update: EntryUpdate,
    user_id: str = Depends(get_current_user_id),
    store: EntryStore = Depends(get_entry_store),
):
    changes = entry_update.changes()
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    try:
        require_owned(store, entry_id, user_id)
        updated = store.update_by_id(entry_id, changes)
    except errors.NotFoundOrUnauthorized:
        raise _not_found()
    except Exception as e:
        raise _server_error("update entry", e)

    if updated is None:
        # removed between the ownership check and the update
        raise _not_found()
    return EntryPublic.from_entry(updated)


@router.delete("/{entry_id}")
def delete_entry(
    entry_id: str,
    user_id: str = Depends(get_current_user_id),
    store: EntryStore = Depends(get_entry_store),
) -> Dict:
    try:
        require_owned(store, entry_id, user_id)
        deleted = store.delete_by_id(entry_id)
    except errors.NotFoundOrUnauthorized:
        raise _not_found()
    except Exception as e:
        raise _server_error("delete entry", e)

    if not deleted:
        raise _not_found()
    logger.info(f"Deleted entry {entry_id} for user {user_id}")
    return {"message": "Entry deleted"}
