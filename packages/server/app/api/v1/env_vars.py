"""
Environment variable API endpoints.

GET    /api/v1/apps/{appId}/env-vars                 - List, secrets masked (any app role)
POST   /api/v1/apps/{appId}/env-vars                 - Create one (developer)
POST   /api/v1/apps/{appId}/env-vars/bulk            - Import many into one environment (developer)
POST   /api/v1/apps/{appId}/env-vars/parse           - Parse .env content without saving (developer)
PATCH  /api/v1/apps/{appId}/env-vars/{varId}         - Update (developer)
DELETE /api/v1/apps/{appId}/env-vars/{varId}         - Delete (developer)
GET    /api/v1/apps/{appId}/env-vars/{varId}/reveal  - Plain-text value (app admin)
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Response

from app.core.access import AccessContext
from app.core.auth import require_app_admin, require_app_developer, require_app_viewer
from app.core.store import RowStore, get_store
from app.models.env_var import EnvVar
from app.services import env_vars as env_var_service
from ota_shared.schemas.env_vars import (
    SECRET_MASK,
    EnvEnvironment,
    EnvParseRequest,
    EnvParseResponse,
    EnvVarBulkRequest,
    EnvVarBulkResponse,
    EnvVarCreateRequest,
    EnvVarListResponse,
    EnvVarResponse,
    EnvVarUpdateRequest,
    ParsedEnvVar,
    SecretRevealResponse,
    parse_env_content,
)

router = APIRouter()


def _env_var_response(var: EnvVar) -> EnvVarResponse:
    resp = EnvVarResponse.model_validate(var)
    if var.is_secret:
        resp.value = SECRET_MASK
    return resp


@router.get("", response_model=EnvVarListResponse)
async def list_env_vars(
    appId: uuid.UUID,
    environment: Optional[EnvEnvironment] = None,
    ctx: AccessContext = Depends(require_app_viewer),
    store: RowStore = Depends(get_store),
):
    rows = await env_var_service.list_env_vars(appId, store, environment)
    return EnvVarListResponse(data=[_env_var_response(v) for v in rows])


@router.post("", response_model=EnvVarResponse, status_code=201)
async def create_env_var(
    appId: uuid.UUID,
    body: EnvVarCreateRequest,
    ctx: AccessContext = Depends(require_app_developer),
    store: RowStore = Depends(get_store),
):
    var = await env_var_service.create_env_var(appId, body, store)
    return _env_var_response(var)


@router.post("/bulk", response_model=EnvVarBulkResponse, status_code=201)
async def bulk_import(
    appId: uuid.UUID,
    body: EnvVarBulkRequest,
    ctx: AccessContext = Depends(require_app_developer),
    store: RowStore = Depends(get_store),
):
    """Create or overwrite many string variables in one environment."""
    rows = await env_var_service.bulk_upsert_env_vars(appId, body, store)
    return EnvVarBulkResponse(created=len(rows), variables=[_env_var_response(v) for v in rows])


@router.post("/parse", response_model=EnvParseResponse)
async def parse_content(
    appId: uuid.UUID,
    body: EnvParseRequest,
    ctx: AccessContext = Depends(require_app_developer),
):
    """Preview what a .env file would import. Nothing is written."""
    variables = parse_env_content(body.content)
    return EnvParseResponse(
        variables=[ParsedEnvVar(**v) for v in variables], count=len(variables)
    )


@router.patch("/{varId}", response_model=EnvVarResponse)
async def update_env_var(
    appId: uuid.UUID,
    varId: uuid.UUID,
    body: EnvVarUpdateRequest,
    ctx: AccessContext = Depends(require_app_developer),
    store: RowStore = Depends(get_store),
):
    var = await env_var_service.update_env_var(appId, varId, body, store)
    return _env_var_response(var)


@router.delete("/{varId}", status_code=204)
async def delete_env_var(
    appId: uuid.UUID,
    varId: uuid.UUID,
    ctx: AccessContext = Depends(require_app_developer),
    store: RowStore = Depends(get_store),
):
    await env_var_service.delete_env_var(appId, varId, store)
    return Response(status_code=204)


@router.get("/{varId}/reveal", response_model=SecretRevealResponse)
async def reveal_secret(
    appId: uuid.UUID,
    varId: uuid.UUID,
    ctx: AccessContext = Depends(require_app_admin),
    store: RowStore = Depends(get_store),
):
    """Return the stored value of a variable, secret or not. App admins only."""
    var = await env_var_service.reveal_secret(appId, varId, ctx.user_id, store)
    return SecretRevealResponse(id=var.id, key=var.key, value=var.value)
