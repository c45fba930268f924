"""文件管理 - 文件/文件夹 操作请求/响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.packages.filemanager.api.v1.schemas.common import ResponseEnvelope


class FolderCreateBody(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    parentPath: Optional[str] = None


class RenameBody(BaseModel):
    identifier: str = Field(..., min_length=1)
    newName: str = Field(..., min_length=1)


class MoveBody(BaseModel):
    identifier: str = Field(..., min_length=1)
    destinationPath: Optional[str] = None


class DeleteBody(BaseModel):
    identifiers: list[str] = Field(default_factory=list)


FilesListResponse = ResponseEnvelope[dict]
FilesMutationResponse = ResponseEnvelope[Any]
