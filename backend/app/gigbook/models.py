"""
Gig tracker entities. Instances are frozen; reducers produce new copies.
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)


def _revive_datetime(v):
    """Stored dates that no longer parse come back as None instead of failing the whole load. Naive values are UTC."""
    if isinstance(v, str):
        try:
            v = datetime.fromisoformat(v.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Dropping unreadable stored date %r", v)
            return None
    if isinstance(v, datetime) and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class Entity(BaseModel):
    model_config = {"frozen": True, "extra": "ignore"}


class RehearsalTask(Entity):
    id: str
    title: str
    note: Optional[str] = None
    due_date: Optional[datetime] = None
    completed: bool = False
    event_id: Optional[str] = None

    @field_validator("due_date", mode="before")
    @classmethod
    def revive_dates(cls, v):
        return _revive_datetime(v)


class RehearsalEvent(Entity):
    id: str
    name: str
    date: Optional[datetime] = None
    location: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def revive_dates(cls, v):
        return _revive_datetime(v)


class PracticeTask(Entity):
    id: str
    title: str
    note: Optional[str] = None
    due_date: Optional[datetime] = None
    completed: bool = False
    category: Optional[str] = None

    @field_validator("due_date", mode="before")
    @classmethod
    def revive_dates(cls, v):
        return _revive_datetime(v)


class Gig(Entity):
    id: str
    title: str
    venue_name: str
    date: Optional[datetime] = None
    address: Optional[str] = None
    contact: Optional[str] = None
    call_time: Optional[datetime] = None
    compensation: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("date", "call_time", mode="before")
    @classmethod
    def revive_dates(cls, v):
        return _revive_datetime(v)


class TrackerState(Entity):
    rehearsal_tasks: tuple[RehearsalTask, ...] = Field(default_factory=tuple)
    rehearsal_events: tuple[RehearsalEvent, ...] = Field(default_factory=tuple)
    practice_tasks: tuple[PracticeTask, ...] = Field(default_factory=tuple)
    gigs: tuple[Gig, ...] = Field(default_factory=tuple)
