from datetime import datetime
from pathlib import Path
from typing import Iterator

from fastapi import APIRouter, Depends, File, Form, Header, Query, Request, UploadFile, status
from fastapi.responses import StreamingResponse

from ..schemas.asset import (
    AssetCreate,
    AssetRead,
    AssetUpdate,
    AssetVersionRead,
    PagedResult,
    QueryParameters,
)
from ..services import CatalogServices
from ..services.query import project_asset

router = APIRouter(prefix="/videos", tags=["videos"])

_CHUNK_SIZE = 64 * 1024


def get_services(request: Request) -> CatalogServices:
    return request.app.state.services


def get_actor(x_actor: str | None = Header(None)) -> str | None:
    return x_actor


def _upload_size(upload: UploadFile) -> int:
    if upload.size is not None:
        return upload.size
    upload.file.seek(0, 2)
    size = upload.file.tell()
    upload.file.seek(0)
    return size


def _iter_stream(stream) -> Iterator[bytes]:
    try:
        for chunk in iter(lambda: stream.read(_CHUNK_SIZE), b""):
            yield chunk
    finally:
        stream.close()


@router.get("/", response_model=PagedResult)
def list_videos(
    search_term: str = "",
    sort_by: str = "createdDate",
    sort_descending: bool = True,
    page_number: int = 1,
    page_size: int | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
    services: CatalogServices = Depends(get_services),
):
    params = QueryParameters(
        search_term=search_term,
        sort_by=sort_by,
        sort_descending=sort_descending,
        page_number=page_number,
        page_size=page_size,
        created_from=created_from,
        created_to=created_to,
    )
    return services.queries.query(params)


@router.get("/recent", response_model=list[AssetRead])
def list_recent(count: int = 10, services: CatalogServices = Depends(get_services)):
    return services.queries.recent(count)


@router.post("/", response_model=AssetRead, status_code=status.HTTP_201_CREATED)
def create_video(
    payload: AssetCreate,
    services: CatalogServices = Depends(get_services),
    actor: str | None = Depends(get_actor),
):
    return project_asset(services.versioning.create_asset(payload, actor))


@router.post("/upload", response_model=AssetRead, status_code=status.HTTP_201_CREATED)
def upload_video(
    file: UploadFile = File(...),
    title: str = Form(...),
    description: str = Form(""),
    tags: str = Form(""),
    duration_seconds: int = Form(0),
    services: CatalogServices = Depends(get_services),
    actor: str | None = Depends(get_actor),
):
    filename = file.filename or ""
    payload = AssetCreate(
        title=title,
        description=description,
        original_filename=filename,
        file_size_bytes=_upload_size(file),
        file_format=Path(filename).suffix,
        duration_seconds=duration_seconds,
        tags=tags,
    )
    asset, _ = services.versioning.upload_asset(payload, file.file, actor)
    return project_asset(asset)


@router.get("/{asset_id}", response_model=AssetRead)
def get_video(asset_id: str, services: CatalogServices = Depends(get_services)):
    return services.queries.get_asset(asset_id)


@router.put("/{asset_id}", response_model=AssetRead)
def update_video(
    asset_id: str,
    payload: AssetUpdate,
    services: CatalogServices = Depends(get_services),
    actor: str | None = Depends(get_actor),
):
    return project_asset(services.versioning.update_asset_fields(asset_id, payload, actor))


@router.delete("/{asset_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_video(asset_id: str, services: CatalogServices = Depends(get_services)):
    services.versioning.soft_delete(asset_id)


@router.get("/{asset_id}/download")
def download_video(
    asset_id: str,
    version: int | None = Query(None, ge=1),
    services: CatalogServices = Depends(get_services),
):
    asset = services.queries.get_asset(asset_id)
    _, stream = services.versioning.open_content(asset_id, version)
    filename = asset.original_filename or "video.mp4"
    return StreamingResponse(
        _iter_stream(stream),
        media_type="application/octet-stream",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/{asset_id}/versions", response_model=list[AssetVersionRead])
def list_versions(asset_id: str, services: CatalogServices = Depends(get_services)):
    return services.versioning.list_versions(asset_id)


@router.post("/{asset_id}/versions", response_model=AssetVersionRead, status_code=status.HTTP_201_CREATED)
def create_version(
    asset_id: str,
    file: UploadFile = File(...),
    change_description: str = Form(""),
    services: CatalogServices = Depends(get_services),
    actor: str | None = Depends(get_actor),
):
    return services.versioning.add_version(asset_id, file.file, change_description, actor)


@router.get("/{asset_id}/versions/active", response_model=AssetVersionRead)
def get_active_version(asset_id: str, services: CatalogServices = Depends(get_services)):
    return services.versioning.get_active_version(asset_id)


@router.get("/{asset_id}/versions/{version_number}", response_model=AssetVersionRead)
def get_version(asset_id: str, version_number: int, services: CatalogServices = Depends(get_services)):
    return services.versioning.get_version(asset_id, version_number)
