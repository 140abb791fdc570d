"""文件夹相关的请求与响应模型。"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.packages.portal.api.v1.schemas.common import ResponseEnvelope


class FolderItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    parent_id: Optional[int] = None
    service_id: int
    storage_path: Optional[str] = None


class FolderCreate(BaseModel):
    """``parent_id`` 为空时创建在 ``service_id`` 的根目录下。"""

    name: str = Field(..., min_length=1, max_length=255)
    parent_id: Optional[int] = None
    service_id: Optional[int] = None


class FolderRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class FolderMove(BaseModel):
    parent_id: int


FolderResponse = ResponseEnvelope[FolderItem]
FolderListResponse = ResponseEnvelope[list[FolderItem]]
