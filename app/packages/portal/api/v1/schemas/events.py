"""变更通知响应模型。"""

from typing import Any, Optional

from pydantic import BaseModel

from app.packages.portal.api.v1.schemas.common import ResponseEnvelope


class EventSnapshot(BaseModel):
    channel: str
    seq: int
    payload: Optional[dict[str, Any]] = None


EventSnapshotResponse = ResponseEnvelope[EventSnapshot]
