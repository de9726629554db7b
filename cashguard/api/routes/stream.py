from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse

from cashguard.api.schemas.models import FrameSchema
from cashguard.api.services.engine import MonitorEngine
from cashguard.api.services.state import get_engine

router = APIRouter()

logger = logging.getLogger(__name__)


@router.get("/stream/video")
async def stream_video() -> StreamingResponse:
    engine: MonitorEngine = await asyncio.to_thread(get_engine)
    return StreamingResponse(
        engine.mjpeg_generator(),
        media_type="multipart/x-mixed-replace; boundary=frame",
        headers={
            "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
            "Pragma": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@router.websocket("/stream/metadata")
async def stream_metadata(ws: WebSocket) -> None:
    await ws.accept()
    engine: MonitorEngine = await asyncio.to_thread(get_engine)
    try:
        async for result in engine.metadata_stream():
            payload = FrameSchema.from_result(result).model_dump()
            payload["fps"] = engine.fps()
            await ws.send_json(payload)
    except WebSocketDisconnect:
        logger.debug("Metadata client disconnected")
