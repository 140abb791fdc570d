"""共享文件夹相关的请求与响应模型。"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from app.packages.portal.api.v1.schemas.common import ResponseEnvelope
from app.packages.portal.core.enums import VisibilityEnum


class SharedFolderSummary(BaseModel):
    id: int
    name: str
    folder_id: int
    visibility: VisibilityEnum
    services: list[int] = Field(default_factory=list)


class SharedFolderCreate(BaseModel):
    """新建文件夹并共享；未指定父目录时创建在宿主服务根目录下。"""

    name: str = Field(..., min_length=1, max_length=255)
    host_service_id: int
    parent_id: Optional[int] = None
    visibility: VisibilityEnum
    services: list[int] = Field(default_factory=list)


class SharedFolderLink(BaseModel):
    folder_id: int
    visibility: VisibilityEnum
    services: list[int] = Field(default_factory=list)


class SharedFolderUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    visibility: Optional[VisibilityEnum] = None
    services: Optional[list[int]] = None


SharedFolderResponse = ResponseEnvelope[SharedFolderSummary]
SharedFolderListResponse = ResponseEnvelope[list[SharedFolderSummary]]
