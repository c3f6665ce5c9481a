from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict


class RequestInfo(BaseModel):
    method: str
    path: str
    app_id: int


class HealthStatus(BaseModel):
    status: str
    version: str


class ErrorResponse(BaseModel):
    detail: str


class Stat(BaseModel):
    """Accumulated achievement figures of a child or a parent."""

    id: int
    distance: int = 0
    calories: int = 0
    participations: int = 0
    weather: int = 0
    points: int = 0
    streak: int = 0


class ChildInfo(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    school: Optional[str] = None
    school_grade: Optional[int] = None
    drop_off_station_id: Optional[int] = None


class PendingPickup(BaseModel):
    current_station_children: List[ChildInfo] = []
    upcoming_station_children: List[ChildInfo] = []


class TransferValidation(BaseModel):
    is_valid: bool
    requires_transfer: bool = False
    transfer_station_id: Optional[int] = None
    message: Optional[str] = None


class LinkedActivities(BaseModel):
    previous_activity_id: Optional[int] = None
    next_activity_id: Optional[int] = None


class Timeframe(BaseModel):
    label: str
    start: Optional[datetime] = None
    end: Optional[datetime] = None


class LeaderboardEntry(BaseModel):
    id: Optional[int] = None
    name: str
    distance: int = 0
    points: int = 0
    participations: int = 0
