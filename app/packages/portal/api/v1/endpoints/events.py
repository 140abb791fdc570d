"""变更通知路由：轮询快照与 Server-Sent Events 流。"""

import asyncio
import json
import time

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from app.packages.portal.api.v1.schemas.events import EventSnapshot, EventSnapshotResponse
from app.packages.portal.core.config import get_settings
from app.packages.portal.core.constants import CHANGE_CHANNELS, HTTP_STATUS_OK
from app.packages.portal.core.dependencies import get_current_principal
from app.packages.portal.core.exceptions import NotFoundError
from app.packages.portal.core.principal import Principal
from app.packages.portal.core.responses import create_response
from app.packages.portal.services.change_signal import change_signal

router = APIRouter(prefix="/events", tags=["events"])


def _check_channel(channel: str) -> str:
    if channel not in CHANGE_CHANNELS:
        raise NotFoundError("未知的事件通道", {"channel": channel})
    return channel


@router.get("/{channel}", response_model=EventSnapshotResponse)
def get_event_snapshot(channel: str, principal: Principal = Depends(get_current_principal)):
    _check_channel(channel)
    snapshot = change_signal.snapshot(channel)
    data = EventSnapshot(channel=channel, seq=snapshot["seq"], payload=snapshot["payload"])
    return create_response("获取事件序号成功", data, HTTP_STATUS_OK)


@router.get("/{channel}/stream")
async def stream_events(channel: str, principal: Principal = Depends(get_current_principal)):
    """序号变化时推送一帧，超时后由客户端重连。"""
    _check_channel(channel)
    settings = get_settings()

    async def event_source():
        last_seq = await run_in_threadpool(change_signal.sequence, channel)
        yield f"retry: 1000\nid: {last_seq}\n\n"
        deadline = time.monotonic() + settings.events_stream_timeout_seconds
        while time.monotonic() < deadline:
            await asyncio.sleep(settings.events_poll_interval_seconds)
            snapshot = await run_in_threadpool(change_signal.snapshot, channel)
            if snapshot["seq"] == last_seq:
                continue
            last_seq = snapshot["seq"]
            data = json.dumps({"seq": last_seq, "payload": snapshot["payload"]}, ensure_ascii=False)
            yield f"event: {channel}\ndata: {data}\nid: {last_seq}\n\n"

    headers = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}
    return StreamingResponse(event_source(), media_type="text/event-stream", headers=headers)
