"""
Health Check Router
Liveness and DynamoDB reachability endpoints
"""
import logging

from fastapi import APIRouter, Depends

from app.core.config import settings
from app.core.errors import StoreError
from app.db.dynamo import EntryStore, get_entry_store
from app.utils.dates import to_iso, utcnow

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health")
def health_check():
    """
    Health check endpoint.
    Returns API status.
    """
    return {
        "status": "healthy",
        "service": settings.PROJECT_NAME,
        "timestamp": to_iso(utcnow()),
    }


@router.get("/status")
def store_status(store: EntryStore = Depends(get_entry_store)):
    """
    Check that the entries table can be reached.
    """
    dynamodb_status = {
        "connected": False,
        "table": settings.DYNAMO_ENTRIES_TABLE,
        "region": settings.DYNAMO_REGION,
    }
    try:
        store.ping()
        dynamodb_status["connected"] = True
    except StoreError:
        logger.error("DynamoDB status check failed")

    return {
        "timestamp": to_iso(utcnow()),
        "services": {"dynamodb": dynamodb_status},
        "overall_status": "healthy" if dynamodb_status["connected"] else "degraded",
    }
