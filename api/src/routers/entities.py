"""
Generic CRUD routers built from the entity table.

One router per ``EntitySpec``:

    GET    /{path}        list, newest first (optionally filtered, e.g. ?projectId=)
    POST   /{path}        create (201)
    GET    /{path}/{id}   read, 404 when absent
    PUT    /{path}/{id}   full replace, 404 when absent
    DELETE /{path}/{id}   delete, idempotent

Reads need a session; writes need the entity's edit_/delete_ permission.
Bodies are validated against the entity schema before the repository is
called, so malformed input is answered with 400.
"""

from typing import Any, Dict, List, Optional

import structlog
from fastapi import APIRouter, Body, Depends, Query, status

from api.src.dependencies import entity_repository, get_current_user, get_settings_store
from api.src.errors import NotFoundError, failure_as
from api.src.middleware.rbac import PermissionChecker, permission_for
from api.src.models.auth import CurrentUser, ErrorResponse
from api.src.models.entities import ENTITIES, EntitySpec
from api.src.repositories.base import EntityRepository, Record
from api.src.services.settings_service import SettingsStore

logger = structlog.get_logger(__name__)


def _fields(payload) -> Record:
    return payload.model_dump(by_alias=True, exclude_unset=True)


def _list_filters(spec: EntitySpec):
    """Dependency turning the entity's list filter query parameter into repository filters."""
    if spec.list_filter is None:
        def no_filters() -> Record:
            return {}
        return no_filters

    def query_filters(
        value: Optional[str] = Query(
            None, alias=spec.list_filter, description=f"Only records with this {spec.list_filter}"
        )
    ) -> Record:
        return {spec.list_filter: value} if value else {}
    return query_filters


def build_entity_router(spec: EntitySpec) -> APIRouter:
    """Create the CRUD router of one entity kind."""
    schema = spec.schema
    get_repo = entity_repository(spec.name)
    can_edit = PermissionChecker(permission_for("edit", spec.permission_key))
    can_delete = PermissionChecker(permission_for("delete", spec.permission_key))
    list_filters = _list_filters(spec)

    router = APIRouter(
        prefix=f"/{spec.path}",
        tags=[spec.label],
        responses={
            400: {"model": ErrorResponse, "description": "Invalid request"},
            401: {"model": ErrorResponse, "description": "Unauthorized"},
            500: {"model": ErrorResponse, "description": "Internal error"},
        }
    )

    @router.get("", summary=f"List {spec.plural}")
    async def list_records(
        filters: Record = Depends(list_filters),
        user: CurrentUser = Depends(get_current_user),
        repo: EntityRepository = Depends(get_repo)
    ) -> List[Dict[str, Any]]:
        with failure_as(f"Failed to fetch {spec.plural}", entity=spec.name):
            return await repo.get_all(filters)

    @router.post(
        "",
        status_code=status.HTTP_201_CREATED,
        summary=f"Create {spec.singular}",
        responses={403: {"model": ErrorResponse, "description": "Forbidden"}}
    )
    async def create_record(
        payload: schema = Body(...),
        user: CurrentUser = Depends(can_edit),
        repo: EntityRepository = Depends(get_repo),
        settings_store: SettingsStore = Depends(get_settings_store)
    ) -> Dict[str, Any]:
        fields = _fields(payload)
        with failure_as(f"Failed to create {spec.singular}", entity=spec.name):
            if spec.number_field and not fields.get(spec.number_field):
                fields[spec.number_field] = settings_store.generate_number(spec.number_setting)
            record = await repo.create(fields)

        logger.info("record_created", entity=spec.name, id=record["id"], user_id=user.id)
        return record

    @router.get(
        "/{record_id}",
        summary=f"Get {spec.singular}",
        responses={404: {"model": ErrorResponse, "description": "Not found"}}
    )
    async def get_record(
        record_id: str,
        user: CurrentUser = Depends(get_current_user),
        repo: EntityRepository = Depends(get_repo)
    ) -> Dict[str, Any]:
        with failure_as(f"Failed to fetch {spec.singular}", entity=spec.name, id=record_id):
            record = await repo.get_by_id(record_id)

        if record is None:
            raise NotFoundError(f"{spec.label} not found")
        return record

    @router.put(
        "/{record_id}",
        summary=f"Replace {spec.singular}",
        responses={
            403: {"model": ErrorResponse, "description": "Forbidden"},
            404: {"model": ErrorResponse, "description": "Not found"},
        }
    )
    async def update_record(
        record_id: str,
        payload: schema = Body(...),
        user: CurrentUser = Depends(can_edit),
        repo: EntityRepository = Depends(get_repo)
    ) -> Dict[str, Any]:
        with failure_as(f"Failed to update {spec.singular}", entity=spec.name, id=record_id):
            record = await repo.update(record_id, _fields(payload))

        logger.info("record_updated", entity=spec.name, id=record_id, user_id=user.id)
        return record

    @router.delete(
        "/{record_id}",
        summary=f"Delete {spec.singular}",
        responses={403: {"model": ErrorResponse, "description": "Forbidden"}}
    )
    async def delete_record(
        record_id: str,
        user: CurrentUser = Depends(can_delete),
        repo: EntityRepository = Depends(get_repo)
    ) -> Dict[str, bool]:
        with failure_as(f"Failed to delete {spec.singular}", entity=spec.name, id=record_id):
            await repo.delete(record_id)

        logger.info("record_deleted", entity=spec.name, id=record_id, user_id=user.id)
        return {"success": True}

    return router


def build_entity_routers() -> List[APIRouter]:
    return [build_entity_router(spec) for spec in ENTITIES]
