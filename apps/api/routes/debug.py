from typing import List

from fastapi import APIRouter, Depends, Query

from packages.config import DEBUG_DEFAULT_LIMIT
from packages.store import Store
from ..deps import get_store
from ..schemas import SyncLogEntry, SyncLogsResponse


router = APIRouter()


@router.get("/debug", response_model=List[SyncLogEntry])
def debug(store: Store = Depends(get_store)):
    return store.get_sync_logs(DEBUG_DEFAULT_LIMIT)


@router.get("/debug/sync-logs", response_model=SyncLogsResponse)
def sync_logs(limit: int = Query(50, ge=1, le=500), store: Store = Depends(get_store)):
    return {"logs": store.get_sync_logs(limit)}
