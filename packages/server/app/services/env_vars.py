"""
Environment variable service: per-app variables scoped by environment and channel.

Secret values are stored as given and only leave the service through
``reveal_secret``; the API masks them everywhere else.
"""

from __future__ import annotations

import uuid
from typing import Optional

import structlog

from app.core.errors import Conflict, InputError, ResourceNotFound, StoreConflict
from app.core.store import RowStore
from app.models.env_var import EnvVar
from ota_shared.schemas.env_vars import (
    EnvEnvironment,
    EnvValueType,
    EnvVarBulkRequest,
    EnvVarCreateRequest,
    EnvVarUpdateRequest,
    value_matches_type,
)

log = structlog.get_logger()

SCOPE_KEYS = ("app_id", "key", "environment", "channel")


def _duplicate(key: str) -> Conflict:
    return Conflict(f"Variable '{key}' already exists for this environment/channel")


async def list_env_vars(
    app_id: uuid.UUID, store: RowStore, environment: Optional[EnvEnvironment] = None
) -> list[EnvVar]:
    filters = {} if environment is None else {"environment": environment.value}
    rows = await store.select(EnvVar, app_id=app_id, **filters)
    return sorted(rows, key=lambda v: (v.key, v.environment, v.channel))


async def get_env_var(app_id: uuid.UUID, var_id: uuid.UUID, store: RowStore) -> EnvVar:
    var = await store.select_one(EnvVar, id=var_id, app_id=app_id)
    if var is None:
        raise ResourceNotFound("Environment variable not found")
    return var


async def create_env_var(app_id: uuid.UUID, req: EnvVarCreateRequest, store: RowStore) -> EnvVar:
    try:
        var = await store.insert(
            EnvVar(
                app_id=app_id,
                key=req.key,
                value=req.value,
                value_type=req.value_type.value,
                environment=req.environment.value,
                channel=req.channel or "",
                is_secret=req.is_secret,
                description=req.description,
            )
        )
    except StoreConflict as exc:
        raise _duplicate(req.key) from exc
    log.info("env_var.created", app_id=str(app_id), key=var.key, environment=var.environment)
    return var


async def bulk_upsert_env_vars(
    app_id: uuid.UUID, req: EnvVarBulkRequest, store: RowStore
) -> list[EnvVar]:
    """Write every variable as a string into ``req.environment``. Last write wins per key."""
    written = []
    for item in req.variables:
        written.append(
            await store.upsert(
                EnvVar,
                {
                    "app_id": app_id,
                    "key": item.key,
                    "value": item.value,
                    "value_type": EnvValueType.STRING.value,
                    "environment": req.environment.value,
                    "channel": "",
                    "is_secret": item.is_secret,
                },
                SCOPE_KEYS,
            )
        )
    log.info("env_var.bulk_imported", app_id=str(app_id), count=len(written))
    return written


async def update_env_var(
    app_id: uuid.UUID, var_id: uuid.UUID, req: EnvVarUpdateRequest, store: RowStore
) -> EnvVar:
    patch = req.model_dump(exclude_unset=True, mode="json")
    # description and channel may be cleared; the rest may not
    patch = {k: v for k, v in patch.items() if v is not None or k in ("description", "channel")}
    if "channel" in patch:
        patch["channel"] = patch["channel"] or ""
    if not patch:
        raise InputError("Nothing to update")

    current = await get_env_var(app_id, var_id, store)
    value_type = patch.get("value_type", current.value_type)
    value = patch.get("value", current.value)
    if not value_matches_type(value_type, value):
        raise InputError(f"value is not a valid {value_type}")

    try:
        updated = await store.update(EnvVar, patch, id=var_id, app_id=app_id)
    except StoreConflict as exc:
        raise _duplicate(patch.get("key", current.key)) from exc
    if not updated:
        raise ResourceNotFound("Environment variable not found")
    log.info("env_var.updated", app_id=str(app_id), var_id=str(var_id), fields=sorted(patch))
    return updated[0]


async def delete_env_var(app_id: uuid.UUID, var_id: uuid.UUID, store: RowStore) -> None:
    deleted = await store.delete(EnvVar, id=var_id, app_id=app_id)
    if not deleted:
        raise ResourceNotFound("Environment variable not found")
    log.info("env_var.deleted", app_id=str(app_id), var_id=str(var_id))


async def reveal_secret(
    app_id: uuid.UUID, var_id: uuid.UUID, revealed_by: uuid.UUID, store: RowStore
) -> EnvVar:
    var = await get_env_var(app_id, var_id, store)
    if var.is_secret:
        log.info(
            "env_var.secret_revealed",
            app_id=str(app_id),
            var_id=str(var_id),
            user_id=str(revealed_by),
        )
    return var
