"""Incident listing, operator triggers, manual recording and retry."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from cashguard.api.schemas.models import IncidentSchema, IncidentStateSchema
from cashguard.api.services.engine import MonitorEngine
from cashguard.api.services.state import get_engine
from cashguard.core.errors import ResourceNotReadyError

router = APIRouter()


@router.get("/incidents", response_model=list[IncidentSchema])
def list_incidents(engine: MonitorEngine = Depends(get_engine)) -> list[IncidentSchema]:
    return [IncidentSchema.from_incident(i) for i in engine.incidents()]


@router.post("/incidents/trigger", response_model=IncidentStateSchema)
def trigger(engine: MonitorEngine = Depends(get_engine)) -> IncidentStateSchema:
    """Test trigger: records and uploads a clip as a real detection would."""

    try:
        engine.trigger_incident()
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from None
    return IncidentStateSchema(**engine.incident_state())


@router.post("/incidents/record/start", response_model=IncidentStateSchema)
def start_recording(engine: MonitorEngine = Depends(get_engine)) -> IncidentStateSchema:
    try:
        engine.start_manual_recording()
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from None
    except ResourceNotReadyError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from None
    return IncidentStateSchema(**engine.incident_state())


@router.post("/incidents/record/stop", response_model=IncidentSchema)
def stop_recording(engine: MonitorEngine = Depends(get_engine)) -> IncidentSchema:
    """Stop the manual recording and upload it."""

    try:
        incident = engine.stop_manual_recording()
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from None
    return IncidentSchema.from_incident(incident)


@router.post("/incidents/{incident_id}/retry", response_model=IncidentSchema)
def retry(incident_id: str, engine: MonitorEngine = Depends(get_engine)) -> IncidentSchema:
    try:
        incident = engine.retry_incident(incident_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Unknown incident") from None
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from None
    return IncidentSchema.from_incident(incident)
