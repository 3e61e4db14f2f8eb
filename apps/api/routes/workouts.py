import logging
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from packages.store import Store
from services.processing.aggregation import list_workouts
from .. import cache
from ..deps import get_store
from ..schemas import DeleteResponse, Workout


router = APIRouter()

logger = logging.getLogger("fitness.api")


@router.get("/workouts", response_model=List[Workout])
def workouts(
    workout_type: Optional[str] = Query(None, alias="type"),
    date_from: Optional[date] = Query(None, alias="from"),
    date_to: Optional[date] = Query(None, alias="to"),
    limit: Optional[int] = Query(None, ge=0),
    store: Store = Depends(get_store),
):
    return list_workouts(
        store,
        workout_type=workout_type,
        date_from=date_from.isoformat() if date_from else None,
        date_to=date_to.isoformat() if date_to else None,
        limit=limit,
    )


@router.delete("/workouts/{workout_id}", response_model=DeleteResponse)
def delete_workout(workout_id: str, store: Store = Depends(get_store)):
    deleted = store.delete_workout(workout_id)
    cache.clear()
    logger.info("workout_deleted id=%s found=%s", workout_id, deleted)
    return {"success": True, "deleted": deleted}
