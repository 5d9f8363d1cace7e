"""
Pydantic request schemas for the Echo API.

Clients send camelCase; every model also accepts the snake_case field names.
"""

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from shared.constants import (
    NAME_MAX_LENGTH,
    NAME_MIN_LENGTH,
    PASSWORD_MIN_LENGTH,
    PLANT_NAME_MAX_LENGTH,
    SELECTABLE_THEMES,
    TASK_CATEGORY_MAX_LENGTH,
    TASK_TEXT_MAX_LENGTH,
)

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

Priority = Literal["low", "medium", "high"]
Recurrence = Literal["none", "daily", "weekly", "monthly"]


class EchoModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True
    )


class RegisterRequest(EchoModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=PASSWORD_MIN_LENGTH)
    name: str = Field(..., min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH)
    goals: Optional[list[str]] = None


class LoginRequest(EchoModel):
    email: str = Field(..., pattern=EMAIL_PATTERN)
    password: str = Field(..., min_length=1)
    load_progress: bool = True


class ProfileUpdateRequest(EchoModel):
    name: Optional[str] = Field(
        default=None, min_length=NAME_MIN_LENGTH, max_length=NAME_MAX_LENGTH
    )
    goals: Optional[list[str]] = None


class TaskCreateRequest(EchoModel):
    text: str = Field(..., min_length=1, max_length=TASK_TEXT_MAX_LENGTH)
    priority: Priority = "medium"
    category: str = Field(default="", max_length=TASK_CATEGORY_MAX_LENGTH)
    due_date: Optional[date] = None
    recurring: Recurrence = "none"


class TaskUpdateRequest(EchoModel):
    text: Optional[str] = Field(
        default=None, min_length=1, max_length=TASK_TEXT_MAX_LENGTH
    )
    completed: Optional[bool] = None
    priority: Optional[Priority] = None
    category: Optional[str] = Field(default=None, max_length=TASK_CATEGORY_MAX_LENGTH)
    due_date: Optional[date] = None
    recurring: Optional[Recurrence] = None

    def patch(self) -> dict:
        return self.model_dump(exclude_unset=True, exclude_none=True)


class BulkTaskRequest(EchoModel):
    operation: Literal["complete", "delete", "update"]
    task_ids: list[str] = Field(..., min_length=1)
    updates: Optional[TaskUpdateRequest] = None


class PurchaseRequest(EchoModel):
    item_id: str = Field(..., min_length=1)
    item_type: Literal["theme", "decoration", "plant-skin"]
    price: int = Field(..., ge=0)
    item_name: Optional[str] = None
    auto_activate: bool = False


class ThemeActivateRequest(EchoModel):
    theme_id: str = Field(..., min_length=1)


class ThemeRequest(EchoModel):
    theme: str

    @field_validator("theme")
    @classmethod
    def check_theme(cls, value: str) -> str:
        if value not in SELECTABLE_THEMES:
            raise ValueError("Invalid theme")
        return value


class CoinsRequest(EchoModel):
    amount: int = Field(..., ge=0)
    operation: Literal["add", "subtract", "deduct", "set"] = "add"
    reason: Optional[str] = None


class PlantCreateRequest(EchoModel):
    name: str = Field(..., min_length=1, max_length=PLANT_NAME_MAX_LENGTH)


class HealthUpdateRequest(EchoModel):
    calories_consumed: Optional[int] = Field(default=None, ge=0, le=10000)
    calories_goal: Optional[int] = Field(default=None, ge=500, le=5000)
    water_glasses: Optional[int] = Field(default=None, ge=0, le=50)
    water_goal: Optional[int] = Field(default=None, ge=1, le=20)
    exercise_minutes: Optional[int] = Field(default=None, ge=0, le=600)
    exercise_goal: Optional[int] = Field(default=None, ge=1, le=300)
    sleep_hours: Optional[float] = Field(default=None, ge=0, le=24)
    sleep_goal: Optional[float] = Field(default=None, ge=1, le=12)
