"""
Segment API Endpoints

Includes:
- Field catalogue for the audience builder
- Population estimate for a criteria tree
- Member preview ("verify users")
- Live estimate over WebSocket (debounced, last request wins)
"""

import asyncio
import json
import logging
from typing import List

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from teleflow.api.deps import DbSession, SessionFactory
from teleflow.config import settings
from teleflow.schemas.segment import (
    EstimateRequest,
    EstimateResponse,
    FieldDefinitionResponse,
    MembersRequest,
    MembersResponse,
    SegmentCriteria,
    SegmentMember,
)
from teleflow.services.segments import CriteriaEstimator, LiveEstimator, get_available_fields

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/fields", response_model=List[FieldDefinitionResponse])
async def list_fields():
    """Fields usable in segment conditions, with their allowed operators."""
    return get_available_fields()


@router.post("/estimate", response_model=EstimateResponse)
async def estimate_segment(request: EstimateRequest, db: DbSession):
    """Estimate the population matched by a criteria tree.

    A failed estimate returns ``count: null`` with ``error`` set; zero is a
    real result.
    """
    result = await CriteriaEstimator(db).estimate(request.criteria)
    return EstimateResponse(
        count=result.count,
        error=result.error,
        strategy=result.strategy,
        execution_time_ms=result.execution_time_ms,
    )


@router.post("/members", response_model=MembersResponse)
async def preview_members(request: MembersRequest, db: DbSession):
    """Matching profiles with their tags, up to ``limit``."""
    total, rows, error = await CriteriaEstimator(db).fetch_members(request.criteria, limit=request.limit)
    return MembersResponse(
        count=total,
        error=error,
        members=[SegmentMember.model_validate(row) for row in rows],
    )


@router.websocket("/estimate/live")
async def live_estimate(websocket: WebSocket, session_factory: SessionFactory):
    """
    Live estimate channel for the audience builder.

    Message Protocol:
    - Client -> Server: {"criteria": {...}} on every edit, or {"type": "ping"}
    - Server -> Client: {"type": "estimate", "count": .., "loading": .., "error": .., "generation": ..}
    """
    await websocket.accept()

    async def run_estimate(criteria: SegmentCriteria):
        async with session_factory() as db:
            return await CriteriaEstimator(db).estimate(criteria)

    estimator = LiveEstimator(run_estimate, debounce_seconds=settings.ESTIMATE_DEBOUNCE_MS / 1000)

    async def forward_updates():
        while True:
            state = await estimator.updates.get()
            await websocket.send_json({"type": "estimate", **state.model_dump()})

    forwarder = asyncio.create_task(forward_updates())
    try:
        while True:
            try:
                data = await websocket.receive_json()
            except json.JSONDecodeError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON format"})
                continue

            if not isinstance(data, dict):
                await websocket.send_json({"type": "error", "message": "Expected a JSON object"})
                continue

            if data.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
                continue

            try:
                criteria = SegmentCriteria.model_validate(data.get("criteria") or {})
            except ValidationError as e:
                await websocket.send_json({"type": "error", "message": str(e)})
                continue
            estimator.update(criteria)

    except WebSocketDisconnect:
        logger.info("Live estimate socket disconnected")
    finally:
        forwarder.cancel()
        await estimator.close()
