from fastapi import APIRouter, Depends

from packages.config import STATS_CACHE_SECONDS
from packages.store import Store
from services.processing.aggregation import compute_stats
from ..cache import get_or_set
from ..deps import get_store
from ..schemas import StatsResponse


router = APIRouter()


@router.get("/stats", response_model=StatsResponse)
def stats(store: Store = Depends(get_store)):
    last_sync = store.get_last_sync_time()
    return get_or_set("stats", STATS_CACHE_SECONDS, last_sync, lambda: compute_stats(store))
