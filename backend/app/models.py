import re
from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field, field_validator
from typing import Optional

from .engine.session import SessionStatus, SessionType

ID_RE = re.compile(r"^[0-9a-zA-Z_-]{1,64}$")


def _validate_id(v: Optional[str]) -> Optional[str]:
    if v is not None and not ID_RE.match(v):
        raise ValueError("must be a valid id")
    return v


class NoteCategory(str, Enum):
    PROMPT_PATTERN = "PROMPT_PATTERN"
    GOLDEN_CODE = "GOLDEN_CODE"
    DEBUG_LOG = "DEBUG_LOG"
    MODEL_NOTE = "MODEL_NOTE"
    INSIGHT = "INSIGHT"


class HabitCategory(str, Enum):
    DAILY_SHIP = "DAILY_SHIP"
    CONTEXT_REFRESH = "CONTEXT_REFRESH"
    CODE_REVIEW = "CODE_REVIEW"
    BACKUP_CHECK = "BACKUP_CHECK"
    FLOW_BLOCK = "FLOW_BLOCK"


# ── Sessions ──────────────────────────────────────────────────────────────────

class SessionCreate(BaseModel):
    session_type: SessionType
    project_id: Optional[str] = None
    ai_models_used: list[str] = Field(min_length=1, max_length=5)
    model_config = {"extra": "ignore"}

    @field_validator("project_id")
    @classmethod
    def validate_project_id(cls, v):
        return _validate_id(v)


class SessionPatch(BaseModel):
    duration_seconds: Optional[int] = Field(None, ge=0)
    ai_context_health: Optional[int] = Field(None, ge=0, le=100)
    productivity_score: Optional[int] = Field(None, ge=1, le=10)
    checkpoint_notes: Optional[str] = Field(None, max_length=5000)
    session_status: Optional[SessionStatus] = None
    model_config = {"extra": "ignore"}


class Checkpoint(BaseModel):
    checkpoint_text: str = Field(min_length=1, max_length=2000)


# ── Analytics ─────────────────────────────────────────────────────────────────

class MarkShip(BaseModel):
    notes: Optional[str] = Field(None, max_length=500)


# ── Habits ────────────────────────────────────────────────────────────────────

class HabitCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    category: HabitCategory
    target_frequency: int = Field(1, ge=1, le=7)


class HabitPatch(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    category: Optional[HabitCategory] = None
    target_frequency: Optional[int] = Field(None, ge=1, le=7)
    is_active: Optional[bool] = None


class HabitComplete(BaseModel):
    notes: Optional[str] = Field(None, max_length=500)


# ── Notes ─────────────────────────────────────────────────────────────────────

class NoteCreate(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    content: str = Field(min_length=1, max_length=10000)
    category: NoteCategory
    tags: list[str] = Field(default_factory=list, max_length=20)
    session_id: Optional[str] = None
    project_id: Optional[str] = None

    @field_validator("session_id", "project_id")
    @classmethod
    def validate_refs(cls, v):
        return _validate_id(v)


class NotePatch(BaseModel):
    title: Optional[str] = Field(None, max_length=200)
    content: Optional[str] = Field(None, min_length=1, max_length=10000)
    category: Optional[NoteCategory] = None
    tags: Optional[list[str]] = Field(None, max_length=20)
    is_template: Optional[bool] = None


# ── Projects ──────────────────────────────────────────────────────────────────

class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    feels_right_score: int = Field(3, ge=1, le=5)
    ship_target: Optional[datetime] = None
    stack_notes: Optional[str] = Field(None, max_length=2000)


class ProjectPatch(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    feels_right_score: Optional[int] = Field(None, ge=1, le=5)
    ship_target: Optional[datetime] = None
    stack_notes: Optional[str] = Field(None, max_length=2000)
    is_active: Optional[bool] = None


class FeelsRightScore(BaseModel):
    score: int = Field(ge=1, le=5)


class Pivot(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)
