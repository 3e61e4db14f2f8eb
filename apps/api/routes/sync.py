from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from packages.store import Store
from services.ingestion.webhook import ingest_bulk
from .. import cache
from ..deps import get_store
from ..schemas import SyncResponse
from ..utils import read_json, user_agent


router = APIRouter()


@router.post("/sync", response_model=SyncResponse)
async def sync(request: Request, store: Store = Depends(get_store)):
    payload = await read_json(request)
    try:
        result = await run_in_threadpool(ingest_bulk, store, payload, user_agent(request))
    finally:
        cache.clear()
    return {
        "success": True,
        "message": "Sync complete",
        "workoutsAdded": len(result.workout_ids),
        "dailyStatsAdded": len(result.days),
        **result.as_dict(),
    }
