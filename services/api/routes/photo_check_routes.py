from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from ..api_models import PhotoCheckAliasRequest, PhotoCheckPayload
from ..photo_check import application as photo_check_application
from ..photo_check.deps import PhotoCheckApplicationDeps
from ..photo_check_record_store import PhotoCheckRecordError


def _payload(req: PhotoCheckPayload) -> dict:
    return req.model_dump(exclude_none=True)


def build_router(app_deps: PhotoCheckApplicationDeps) -> APIRouter:
    router = APIRouter()

    @router.post("/photo-check/report")
    def photo_check_report(req: PhotoCheckPayload):
        return photo_check_application.render_report(_payload(req), deps=app_deps)

    @router.post("/photo-check/records")
    async def photo_check_record_create(req: PhotoCheckPayload):
        try:
            return await photo_check_application.create_record(_payload(req), deps=app_deps)
        except PhotoCheckRecordError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.detail)

    @router.get("/photo-check/records")
    async def photo_check_records():
        return await photo_check_application.list_records(deps=app_deps)

    @router.get("/photo-check/records/{record_id}")
    async def photo_check_record(record_id: str):
        try:
            return await photo_check_application.get_record(record_id, deps=app_deps)
        except PhotoCheckRecordError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.detail)

    @router.patch("/photo-check/records/{record_id}")
    async def photo_check_record_rename(record_id: str, req: PhotoCheckAliasRequest):
        try:
            return await photo_check_application.rename_record(record_id, req.alias, deps=app_deps)
        except PhotoCheckRecordError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.detail)

    @router.delete("/photo-check/records/{record_id}")
    async def photo_check_record_delete(record_id: str):
        try:
            return await photo_check_application.delete_record(record_id, deps=app_deps)
        except PhotoCheckRecordError as exc:
            raise HTTPException(status_code=exc.status_code, detail=exc.detail)

    @router.get("/photo-check/logs")
    async def photo_check_logs(limit: Optional[int] = Query(None, ge=0, le=1000)):
        return await photo_check_application.read_logs(limit, deps=app_deps)

    return router
