"""Start/stop the monitoring loop and toggle auto-monitoring."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from cashguard.api.schemas.models import AutoRecordSchema
from cashguard.api.services.engine import MonitorEngine
from cashguard.api.services.state import get_engine

router = APIRouter()


@router.post("/monitor/start")
def start(engine: MonitorEngine = Depends(get_engine)) -> dict[str, object]:
    if not engine.start():
        raise HTTPException(status_code=503, detail=engine.last_error or "Monitor failed to start")
    return {"running": True}


@router.post("/monitor/stop")
def stop(engine: MonitorEngine = Depends(get_engine)) -> dict[str, object]:
    engine.stop()
    return {"running": False}


@router.post("/monitor/auto", response_model=AutoRecordSchema)
def set_auto(body: AutoRecordSchema, engine: MonitorEngine = Depends(get_engine)) -> AutoRecordSchema:
    """Turn automatic incident recording on or off; operator triggers keep working."""

    engine.set_auto_record(body.enabled)
    return AutoRecordSchema(enabled=engine.auto_record)
