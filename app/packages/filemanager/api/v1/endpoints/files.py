"""文件与文件夹操作路由。

所有接口都经过授权服务把关；适配器返回的提示字符串映射为 400，
``PartialFailure``（存储层部分失败）映射为 500 并在 ``data.failedKeys`` 中给出失败的键。
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, File, Form, Query, UploadFile

from app.packages.filemanager.adapters.base import FileManagerAdapter, PartialFailure, UploadedFile
from app.packages.filemanager.api.v1.schemas.files import (
    DeleteBody,
    FilesListResponse,
    FilesMutationResponse,
    FolderCreateBody,
    MoveBody,
    RenameBody,
)
from app.packages.filemanager.core.constants import (
    HTTP_STATUS_BAD_REQUEST,
    HTTP_STATUS_FORBIDDEN,
    HTTP_STATUS_INTERNAL_SERVER_ERROR,
    HTTP_STATUS_NOT_FOUND,
    HTTP_STATUS_OK,
    MODE_DATABASE,
)
from app.packages.filemanager.core.dependencies import (
    get_adapter,
    get_authorization_service,
    get_current_principal,
    get_url_service,
)
from app.packages.filemanager.core.exceptions import AppException
from app.packages.filemanager.core.responses import create_response
from app.packages.filemanager.core.security import Principal
from app.packages.filemanager.services.authorization import AuthorizationService
from app.packages.filemanager.services.url_service import FileUrlService

router = APIRouter(tags=["filemanager"])

DEFAULT_PREVIEW_BYTES = 1024 * 1024
MAX_PREVIEW_BYTES = 10 * 1024 * 1024


def _require(allowed: bool) -> None:
    if not allowed:
        raise AppException("无权限执行该操作", HTTP_STATUS_FORBIDDEN)


def _raise_on_failure(result: Any) -> None:
    """适配器返回字符串即为失败提示。"""
    if isinstance(result, PartialFailure):
        raise AppException(str(result), HTTP_STATUS_INTERNAL_SERVER_ERROR, data={"failedKeys": result.failed_keys})
    if isinstance(result, str):
        raise AppException(result, HTTP_STATUS_BAD_REQUEST)


def _unwrap(result: Any, success_msg: str, data: Any = None) -> dict:
    _raise_on_failure(result)
    return create_response(success_msg, data, HTTP_STATUS_OK)


def _get_item_or_404(adapter: FileManagerAdapter, identifier: str):
    item = adapter.get_item(identifier)
    if item is None:
        raise AppException("文件不存在", HTTP_STATUS_NOT_FOUND)
    return item


@router.get("/files", response_model=FilesListResponse)
def list_items(
    path: Optional[str] = Query(None),
    adapter: FileManagerAdapter = Depends(get_adapter),
    authorization: AuthorizationService = Depends(get_authorization_service),
    user: Optional[Principal] = Depends(get_current_principal),
):
    _require(authorization.can_view_any(user))
    items = [item.to_dict() for item in adapter.get_items(path)]
    payload = {"items": items, "currentPath": path or "/", "mode": adapter.get_mode_name()}
    return create_response("获取文件列表成功", payload, HTTP_STATUS_OK)


@router.get("/files/item", response_model=FilesMutationResponse)
def get_item(
    identifier: str = Query(..., min_length=1),
    adapter: FileManagerAdapter = Depends(get_adapter),
    authorization: AuthorizationService = Depends(get_authorization_service),
    url_service: FileUrlService = Depends(get_url_service),
    user: Optional[Principal] = Depends(get_current_principal),
):
    item = _get_item_or_404(adapter, identifier)
    _require(authorization.can_view(user, item))
    data = item.to_dict()
    data["previewUrl"] = None
    data["downloadUrl"] = None
    location = adapter.locate(identifier)
    if location is not None:
        disk, key = location
        mode = adapter.get_mode_name()
        item_identifier = identifier if mode == MODE_DATABASE else None
        data["previewUrl"] = url_service.get_preview_url(disk, key, mode=mode, identifier=item_identifier)
        if authorization.can_download(user, item):
            data["downloadUrl"] = url_service.get_download_url(
                disk, key, mode=mode, identifier=item_identifier, filename=item.name
            )
    return create_response("获取文件详情成功", data, HTTP_STATUS_OK)


@router.get("/files/contents", response_model=FilesMutationResponse)
def get_contents(
    identifier: str = Query(..., min_length=1),
    max_size: int = Query(DEFAULT_PREVIEW_BYTES, alias="maxSize", ge=1, le=MAX_PREVIEW_BYTES),
    adapter: FileManagerAdapter = Depends(get_adapter),
    authorization: AuthorizationService = Depends(get_authorization_service),
    user: Optional[Principal] = Depends(get_current_principal),
):
    """读取文件开头至多 ``maxSize`` 字节作为文本预览。"""
    item = _get_item_or_404(adapter, identifier)
    _require(authorization.can_view(user, item))
    if not item.is_file:
        raise AppException("目标不是文件", HTTP_STATUS_BAD_REQUEST)
    content = adapter.get_contents(identifier, max_size)
    if content is None:
        raise AppException("文件内容不可读", HTTP_STATUS_NOT_FOUND)
    size = adapter.get_size(identifier)
    data = {
        "content": content.decode("utf-8", errors="replace"),
        "size": size,
        "truncated": size is not None and size > max_size,
    }
    return create_response("获取文件内容成功", data, HTTP_STATUS_OK)


@router.get("/folders", response_model=FilesListResponse)
def list_folders(
    path: Optional[str] = Query(None),
    adapter: FileManagerAdapter = Depends(get_adapter),
    authorization: AuthorizationService = Depends(get_authorization_service),
    user: Optional[Principal] = Depends(get_current_principal),
):
    _require(authorization.can_view_any(user))
    folders = [folder.to_dict() for folder in adapter.get_folders(path)]
    return create_response("获取文件夹列表成功", {"items": folders, "currentPath": path or "/"}, HTTP_STATUS_OK)


@router.get("/folders/tree", response_model=FilesMutationResponse)
def folder_tree(
    adapter: FileManagerAdapter = Depends(get_adapter),
    authorization: AuthorizationService = Depends(get_authorization_service),
    user: Optional[Principal] = Depends(get_current_principal),
):
    _require(authorization.can_view_any(user))
    return create_response("获取目录树成功", adapter.get_folder_tree(), HTTP_STATUS_OK)


@router.get("/breadcrumbs", response_model=FilesMutationResponse)
def breadcrumbs(
    path: Optional[str] = Query(None),
    adapter: FileManagerAdapter = Depends(get_adapter),
    authorization: AuthorizationService = Depends(get_authorization_service),
    user: Optional[Principal] = Depends(get_current_principal),
):
    _require(authorization.can_view_any(user))
    return create_response("获取面包屑成功", adapter.get_breadcrumbs(path), HTTP_STATUS_OK)


@router.post("/folders", response_model=FilesMutationResponse)
def create_folder(
    body: FolderCreateBody,
    adapter: FileManagerAdapter = Depends(get_adapter),
    authorization: AuthorizationService = Depends(get_authorization_service),
    user: Optional[Principal] = Depends(get_current_principal),
):
    _require(authorization.can_create(user))
    result = adapter.create_folder(body.name, body.parentPath)
    _raise_on_failure(result)
    return create_response("文件夹创建成功", result.to_dict(), HTTP_STATUS_OK)


@router.post("/files", response_model=FilesMutationResponse)
def upload_file(
    file: UploadFile = File(...),
    path: Optional[str] = Form(None),
    adapter: FileManagerAdapter = Depends(get_adapter),
    authorization: AuthorizationService = Depends(get_authorization_service),
    user: Optional[Principal] = Depends(get_current_principal),
):
    _require(authorization.can_create(user))
    upload = UploadedFile(
        filename=file.filename or "",
        stream=file.file,
        size=file.size,
        content_type=file.content_type,
    )
    result = adapter.upload_file(upload, path)
    _raise_on_failure(result)
    return create_response("文件上传成功", result.to_dict(), HTTP_STATUS_OK)


@router.patch("/files", response_model=FilesMutationResponse)
def rename_item(
    body: RenameBody,
    adapter: FileManagerAdapter = Depends(get_adapter),
    authorization: AuthorizationService = Depends(get_authorization_service),
    user: Optional[Principal] = Depends(get_current_principal),
):
    item = _get_item_or_404(adapter, body.identifier)
    _require(authorization.can_update(user, item))
    return _unwrap(adapter.rename(body.identifier, body.newName), "重命名成功")


@router.post("/files/move", response_model=FilesMutationResponse)
def move_item(
    body: MoveBody,
    adapter: FileManagerAdapter = Depends(get_adapter),
    authorization: AuthorizationService = Depends(get_authorization_service),
    user: Optional[Principal] = Depends(get_current_principal),
):
    item = _get_item_or_404(adapter, body.identifier)
    _require(authorization.can_update(user, item))
    return _unwrap(adapter.move(body.identifier, body.destinationPath), "文件/文件夹移动成功")


@router.delete("/files", response_model=FilesMutationResponse)
def delete_items(
    body: DeleteBody = Body(...),
    adapter: FileManagerAdapter = Depends(get_adapter),
    authorization: AuthorizationService = Depends(get_authorization_service),
    user: Optional[Principal] = Depends(get_current_principal),
):
    _require(authorization.can_delete_any(user))
    deleted = adapter.delete_many(body.identifiers)
    return create_response("文件/文件夹删除成功", {"deleted": deleted}, HTTP_STATUS_OK)


@router.delete("/files/item", response_model=FilesMutationResponse)
def delete_item(
    identifier: str = Query(..., min_length=1),
    adapter: FileManagerAdapter = Depends(get_adapter),
    authorization: AuthorizationService = Depends(get_authorization_service),
    user: Optional[Principal] = Depends(get_current_principal),
):
    item = _get_item_or_404(adapter, identifier)
    _require(authorization.can_delete(user, item))
    return _unwrap(adapter.delete(identifier), "文件/文件夹删除成功")
