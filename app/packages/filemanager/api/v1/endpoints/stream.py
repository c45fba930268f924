"""文件流路由：签名直链的预览（inline）与下载（attachment）。

路由挂载在 ``FILEMANAGER_STREAM_ROUTE_PREFIX`` 下，不经过 ``API_V1_STR``，
因此生成的直链可以直接交给 <video>/<img> 等标签使用。
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.packages.filemanager.core.constants import STREAM_ROUTE_DOWNLOAD, STREAM_ROUTE_STREAM
from app.packages.filemanager.core.dependencies import get_current_principal, get_db, get_stream_service
from app.packages.filemanager.core.security import Principal
from app.packages.filemanager.services.stream_service import FileStreamService

router = APIRouter(tags=["filemanager-stream"])


def _serve(route: str, request: Request, service: FileStreamService, user: Optional[Principal], db: Session):
    return service.handle(
        route,
        dict(request.query_params),
        user=user,
        db=db,
        range_header=request.headers.get("range"),
    )


@router.get(f"/{STREAM_ROUTE_STREAM}")
def stream_file(
    request: Request,
    service: FileStreamService = Depends(get_stream_service),
    user: Optional[Principal] = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return _serve(STREAM_ROUTE_STREAM, request, service, user, db)


@router.get(f"/{STREAM_ROUTE_DOWNLOAD}")
def download_file(
    request: Request,
    service: FileStreamService = Depends(get_stream_service),
    user: Optional[Principal] = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return _serve(STREAM_ROUTE_DOWNLOAD, request, service, user, db)
