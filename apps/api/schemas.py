from __future__ import annotations

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    code: str
    message: str
    request_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail


class Workout(BaseModel):
    id: str
    type: str
    name: str = "Workout"
    location: str = "Unknown"
    date: str
    startTime: Optional[str] = None
    endTime: Optional[str] = None
    distance: float = 0.0
    steps: int = 0
    duration: int = 0
    calories: int = 0
    heartRateAvg: Optional[int] = None
    heartRateMax: Optional[int] = None
    route: List[Any] = Field(default_factory=list)
    rawData: Optional[Any] = None


class DailyStat(BaseModel):
    date: str
    steps: int = 0
    distance: float = 0.0
    calories: int = 0


class HealthDocument(BaseModel):
    workouts: List[Workout] = Field(default_factory=list)
    dailyStats: List[DailyStat] = Field(default_factory=list)
    lastSync: Optional[str] = None


class TypeBreakdown(BaseModel):
    count: int = 0
    distance: float = 0.0
    steps: int = 0
    calories: int = 0
    duration: int = 0


class WorkoutTotals(BaseModel):
    distance: float = 0.0
    steps: int = 0
    calories: int = 0
    duration: int = 0


class DailyTotals(BaseModel):
    steps: int = 0
    distance: float = 0.0
    calories: int = 0


class StatsResponse(BaseModel):
    totalWorkouts: int = 0
    totalDistance: float = 0.0
    totalSteps: int = 0
    totalCalories: int = 0
    totalDuration: int = 0
    workoutTotals: WorkoutTotals = Field(default_factory=WorkoutTotals)
    dailyTotals: DailyTotals = Field(default_factory=DailyTotals)
    byType: Dict[str, TypeBreakdown] = Field(default_factory=dict)
    recentDaily: List[DailyStat] = Field(default_factory=list)
    lastSync: Optional[str] = None


class IngestResponse(BaseModel):
    success: bool = True
    message: str = "Data received"
    readings: int = 0
    dailyStats: int = 0
    workouts: int = 0
    workoutIds: List[str] = Field(default_factory=list)
    skipped: int = 0
    formats: List[str] = Field(default_factory=list)


class WorkoutIngestResponse(IngestResponse):
    id: Optional[str] = None


class MealIngestResponse(IngestResponse):
    date: Optional[str] = None
    totalCalories: Optional[int] = None


class SyncResponse(IngestResponse):
    workoutsAdded: int = 0
    dailyStatsAdded: int = 0


class DeleteResponse(BaseModel):
    success: bool = True
    deleted: bool = False


class SyncLogEntry(BaseModel):
    receivedAt: str
    source: str = "health"
    userAgent: Optional[str] = None
    payload: Optional[Any] = None


class SyncLogsResponse(BaseModel):
    logs: List[SyncLogEntry] = Field(default_factory=list)
