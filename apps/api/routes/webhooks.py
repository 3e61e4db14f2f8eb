"""Producer-facing ingest endpoints.

Bodies are read as raw JSON because producers disagree on shape; the
blocking store work runs in the threadpool.
"""
from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from packages.store import Store
from services.ingestion.webhook import ingest_health_payload, ingest_meal, ingest_workout
from .. import cache
from ..deps import get_store
from ..schemas import IngestResponse, MealIngestResponse, WorkoutIngestResponse
from ..utils import read_json, user_agent


router = APIRouter()


@router.post("/webhook/health", response_model=IngestResponse)
async def webhook_health(request: Request, store: Store = Depends(get_store)):
    payload = await read_json(request)
    try:
        result = await run_in_threadpool(ingest_health_payload, store, payload, user_agent(request))
    finally:
        cache.clear()
    return {"success": True, "message": "Data received", **result.as_dict()}


@router.post("/webhook/workout", response_model=WorkoutIngestResponse)
async def webhook_workout(request: Request, store: Store = Depends(get_store)):
    payload = await read_json(request)
    try:
        result = await run_in_threadpool(ingest_workout, store, payload, user_agent(request))
    finally:
        cache.clear()
    workout_id = result.workout_ids[0] if result.workout_ids else None
    message = "Workout added" if workout_id else "Workout skipped"
    return {"success": True, "message": message, "id": workout_id, **result.as_dict()}


@router.post("/webhook/meal", response_model=MealIngestResponse)
async def webhook_meal(request: Request, store: Store = Depends(get_store)):
    payload = await read_json(request)
    try:
        result = await run_in_threadpool(ingest_meal, store, payload, user_agent(request))
    finally:
        cache.clear()
    body = {"success": True, "message": "Meal logged" if result.days else "Meal skipped", **result.as_dict()}
    for day, row in result.days.items():
        body["date"] = day
        body["totalCalories"] = row["calories"]
    return body
