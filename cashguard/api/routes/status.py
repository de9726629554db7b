"""Monitor status endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from cashguard.api.schemas.models import FrameSchema, StatusSchema
from cashguard.api.services.engine import MonitorEngine
from cashguard.api.services.state import get_engine

router = APIRouter()


@router.get("/status", response_model=StatusSchema)
def status(engine: MonitorEngine = Depends(get_engine)) -> StatusSchema:
    result = engine.latest_result()
    return StatusSchema(
        running=bool(engine.running),
        fps=engine.fps(),
        auto_record=engine.auto_record,
        frame=FrameSchema.from_result(result) if result is not None else None,
        error=engine.last_error,
    )
