import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from packages.store import Store
from services.processing.aggregation import list_daily
from .. import cache
from ..deps import get_store
from ..schemas import DailyStat, DeleteResponse


router = APIRouter()

logger = logging.getLogger("fitness.api")


@router.get("/daily", response_model=List[DailyStat])
def daily(
    date_from: Optional[date] = Query(None, alias="from"),
    store: Store = Depends(get_store),
):
    return list_daily(store, date_from=date_from.isoformat() if date_from else None)


@router.delete("/daily/{day}", response_model=DeleteResponse)
def delete_daily(day: date, store: Store = Depends(get_store)):
    deleted = store.delete_daily_stat(day.isoformat())
    cache.clear()
    logger.info("daily_deleted date=%s found=%s", day.isoformat(), deleted)
    return {"success": True, "deleted": deleted}
