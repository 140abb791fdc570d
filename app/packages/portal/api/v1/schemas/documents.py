"""文档相关的请求与响应模型。"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.packages.portal.api.v1.schemas.common import ResponseEnvelope


class DocumentItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    folder_id: Optional[int] = None
    service_id: Optional[int] = None
    enterprise_id: Optional[int] = None
    mime_type: Optional[str] = None
    size_bytes: int = 0
    created_by: Optional[int] = None
    create_time: Optional[datetime] = None


class DocumentUpdate(BaseModel):
    """重命名与移动可以同时进行。"""

    name: Optional[str] = Field(default=None, max_length=255)
    folder_id: Optional[int] = None


class DocumentPage(BaseModel):
    items: list[DocumentItem] = Field(default_factory=list)
    total: int
    page: Optional[int] = None
    per_page: Optional[int] = None


DocumentResponse = ResponseEnvelope[DocumentItem]
DocumentListResponse = ResponseEnvelope[list[DocumentItem]]
DocumentPageResponse = ResponseEnvelope[DocumentPage]
