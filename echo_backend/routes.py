"""
HTTP routes for the Echo API.

Handlers stay thin: validate with the request schemas, resolve the caller to a
user id, call one core operation and shape the JSON reply. Core errors are
rendered by the exception handler registered in ``echo_backend.app``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query

from echo_backend.dependencies import get_bearer_token, get_current_user_id, get_services
from echo_backend.schemas import (
    BulkTaskRequest,
    CoinsRequest,
    HealthUpdateRequest,
    LoginRequest,
    PlantCreateRequest,
    ProfileUpdateRequest,
    PurchaseRequest,
    RegisterRequest,
    TaskCreateRequest,
    TaskUpdateRequest,
    ThemeActivateRequest,
    ThemeRequest,
)
from echo_backend.services import EchoServices
from shared.constants import SEARCH_DEFAULT_LIMIT
from shared.json_utils import to_jsonable

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/auth", tags=["auth"])
tasks_router = APIRouter(prefix="/tasks", tags=["tasks"])
users_router = APIRouter(prefix="/users", tags=["users"])


# --- auth -----------------------------------------------------------------


@auth_router.post("/register", status_code=201)
def register(payload: RegisterRequest, services: EchoServices = Depends(get_services)):
    result = services.accounts.register(
        payload.email, payload.password, payload.name, payload.goals
    )
    return {"message": "User registered successfully", **result.as_dict()}


@auth_router.post("/login")
def login(payload: LoginRequest, services: EchoServices = Depends(get_services)):
    result = services.accounts.login(
        payload.email, payload.password, load_progress=payload.load_progress
    )
    return {"message": "Login successful", **result.as_dict()}


@auth_router.post("/logout")
def logout(
    token: str = Depends(get_bearer_token),
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    services.accounts.logout(user_id, token)
    return {"message": "Logout successful"}


@auth_router.get("/profile")
def get_profile(
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    return {"user": services.accounts.get_profile(user_id).as_dict()}


@auth_router.patch("/profile")
def update_profile(
    payload: ProfileUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    user = services.accounts.update_profile(user_id, name=payload.name, goals=payload.goals)
    return {"message": "Profile updated successfully", "user": user.as_dict()}


@auth_router.delete("/account")
def delete_account(
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    services.accounts.delete_account(user_id)
    return {"message": "Account deleted successfully"}


@auth_router.get("/verify")
def verify(
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    return {"valid": True, "user": services.accounts.get_profile(user_id).summary()}


@auth_router.post("/cleanup-sessions")
def cleanup_sessions(
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    deleted = services.authenticator.sweep_expired()
    return {"message": "Expired sessions cleaned up", "deleted": deleted}


# --- tasks ----------------------------------------------------------------


@tasks_router.get("")
def list_tasks(
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    return {"tasks": [t.as_dict() for t in services.tasks.list(user_id)]}


@tasks_router.post("", status_code=201)
def create_task(
    payload: TaskCreateRequest,
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    task = services.tasks.create(user_id, **payload.model_dump())
    return {"message": "Task created successfully", "task": task.as_dict()}


@tasks_router.get("/stats")
def task_stats(
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    return {"stats": services.tasks.stats(user_id).as_dict()}


@tasks_router.get("/search")
def search_tasks(
    query: Optional[str] = None,
    category: Optional[str] = None,
    priority: Optional[str] = None,
    completed: Optional[bool] = None,
    limit: int = Query(default=SEARCH_DEFAULT_LIMIT, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    tasks = services.tasks.search(
        user_id,
        query=query,
        category=category,
        priority=priority,
        completed=completed,
        limit=limit,
    )
    return {"tasks": [t.as_dict() for t in tasks], "count": len(tasks)}


@tasks_router.post("/bulk")
def bulk_tasks(
    payload: BulkTaskRequest,
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    patch = payload.updates.patch() if payload.updates else None
    result = services.tasks.bulk(user_id, payload.operation, payload.task_ids, patch)
    return result.as_dict()


@tasks_router.put("/{task_id}")
@tasks_router.patch("/{task_id}")
def update_task(
    task_id: str,
    payload: TaskUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    change = services.tasks.update(user_id, task_id, payload.patch())
    return {"message": "Task updated successfully", **change.as_dict()}


@tasks_router.patch("/{task_id}/toggle")
def toggle_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    change = services.tasks.toggle(user_id, task_id)
    return {"message": "Task toggled successfully", **change.as_dict()}


@tasks_router.delete("/{task_id}")
def delete_task(
    task_id: str,
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    services.tasks.delete(user_id, task_id)
    return {"message": "Task deleted successfully"}


# --- users ----------------------------------------------------------------


@users_router.get("/inventory")
def get_inventory(
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    return {"inventory": [i.as_dict() for i in services.inventory.list(user_id)]}


@users_router.post("/inventory/purchase")
def purchase_item(
    payload: PurchaseRequest,
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    result = services.inventory.purchase(
        user_id,
        payload.item_id,
        payload.item_type,
        payload.price,
        item_name=payload.item_name,
        auto_activate=payload.auto_activate,
    )
    return {"message": "Item purchased successfully", **result.as_dict()}


@users_router.post("/theme/activate")
def activate_theme(
    payload: ThemeActivateRequest,
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    theme_id = services.inventory.activate(user_id, payload.theme_id)
    return {"message": "Theme activated successfully", "activeTheme": theme_id}


@users_router.patch("/theme")
def update_theme(
    payload: ThemeRequest,
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    theme_id = services.inventory.activate(user_id, payload.theme)
    return {"message": "Theme updated successfully", "theme": theme_id}


@users_router.patch("/coins")
def update_coins(
    payload: CoinsRequest,
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    balance = services.ledger.adjust(user_id, payload.amount, payload.operation)
    if payload.reason:
        logger.info(
            f"Coins {payload.operation} {payload.amount} for user {user_id}: {payload.reason}"
        )
    return {"message": "Coins updated successfully", "coins": balance}


@users_router.get("/plants")
def list_plants(
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    return {"plants": [p.as_dict() for p in services.growth.list(user_id)]}


@users_router.post("/plants", status_code=201)
def create_plant(
    payload: PlantCreateRequest,
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    plant = services.growth.create(user_id, payload.name)
    return {"message": "Plant created successfully", "plant": plant.as_dict()}


@users_router.get("/health/{day}")
def get_health(
    day: str,
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    return {"healthData": services.health.get(user_id, day).as_dict()}


@users_router.put("/health/{day}")
def update_health(
    day: str,
    payload: HealthUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    record = services.health.update(
        user_id, day, payload.model_dump(exclude_none=True)
    )
    return {"message": "Health data updated successfully", "healthData": record.as_dict()}


@users_router.get("/stats")
def user_stats(
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    return {"stats": services.accounts.user_stats(user_id)}


@users_router.post("/progress/save")
def save_progress(
    state: dict[str, Any] = Body(...),
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    saved_at = services.progress.save(user_id, state)
    return to_jsonable({"message": "Progress saved successfully", "savedAt": saved_at})


@users_router.get("/progress/load")
def load_progress(
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    return {"progress": services.progress.load_complete(user_id).as_dict()}


@users_router.post("/session/end")
def end_session(
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    ended_at = services.progress.end_session(user_id)
    return to_jsonable({"message": "Session ended successfully", "endedAt": ended_at})


@users_router.get("/export")
def export_data(
    user_id: str = Depends(get_current_user_id),
    services: EchoServices = Depends(get_services),
):
    return services.accounts.export(user_id)


router = APIRouter()
router.include_router(auth_router)
router.include_router(tasks_router)
router.include_router(users_router)
