"""Scene API endpoints.

This module provides:
- POST /turn - Run one director command against a client-held scene
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ...core.scene_state import SceneState
from ...core.turn_orchestrator import TurnOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


class TurnRequest(BaseModel):
    """Request body for a scene turn.

    Fields are loosely typed so that bad input gets this API's own 400
    messages instead of a generic validation error.
    """
    sceneState: Optional[Any] = None
    userCommand: Optional[Any] = None


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


@router.post("/turn")
async def process_turn(body: TurnRequest, request: Request):
    """Process one turn.

    Returns ``{sceneState, newLines}``. The scene is never stored server-side;
    the client sends the latest one with every request.
    """
    command = body.userCommand
    if not isinstance(command, str) or not command.strip():
        return _error(400, "userCommand is required")

    scene: Optional[SceneState] = None
    if body.sceneState is not None:
        if not isinstance(body.sceneState, dict):
            return _error(400, "Invalid sceneState")
        try:
            scene = SceneState.from_dict(body.sceneState)
        except ValueError as e:
            logger.warning(f"Rejected scene state: {e}")
            return _error(400, "Invalid sceneState")

    orchestrator: TurnOrchestrator = request.app.state.orchestrator

    try:
        result = await orchestrator.process_turn(scene, command)
    except Exception as e:
        logger.error(f"Error processing turn: {e}", exc_info=True)
        return _error(500, "Internal server error")

    return result.to_dict()
