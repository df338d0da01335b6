"""API routes for running and monitoring classification stages."""

import logging

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ...coordinator import RunCoordinator
from ...errors import ConfigurationError, ConflictError, NoActiveRunError
from ...stages import StageConfig
from ..deps import get_coordinators

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, "success": False})


def build_stage_router(stage: StageConfig) -> APIRouter:
    """Routes to run, stop and inspect one stage."""
    router = APIRouter()

    def get_coordinator(coordinators: dict[str, RunCoordinator] = Depends(get_coordinators)) -> RunCoordinator:
        return coordinators[stage.name]

    @router.post("")
    async def start_run(coordinator: RunCoordinator = Depends(get_coordinator)):
        """Run a batch over all pending posts and wait for it to finish."""
        try:
            result = await coordinator.start_batch()
        except ConflictError as e:
            return _error(409, str(e))
        except ConfigurationError as e:
            return _error(500, str(e))
        except httpx.HTTPError as e:
            logger.error(f"[{stage.label}] Run failed: {e}")
            return _error(500, f"{stage.label} failed: {e}")

        return {"success": True, **result.to_dict()}

    @router.get("/status")
    async def get_status(coordinator: RunCoordinator = Depends(get_coordinator)):
        """Counts and liveness flags for this stage."""
        try:
            status = await coordinator.status()
        except httpx.HTTPError as e:
            logger.error(f"[{stage.label}] Error getting status: {e}")
            return JSONResponse(status_code=500, content={"error": f"Failed to get {stage.name} status"})
        return status.to_dict()

    @router.post("/stop")
    async def stop_run(coordinator: RunCoordinator = Depends(get_coordinator)):
        try:
            coordinator.request_stop()
        except NoActiveRunError as e:
            return _error(400, str(e))

        return {
            "success": True,
            "message": f"Stop requested, {stage.name} will halt after current post",
        }

    @router.post("/background/start")
    async def start_background(coordinator: RunCoordinator = Depends(get_coordinator)):
        try:
            started = coordinator.start_background()
        except ConfigurationError as e:
            return _error(500, str(e))

        return {"success": True, "started": started}

    @router.post("/background/stop")
    async def stop_background(coordinator: RunCoordinator = Depends(get_coordinator)):
        return {"success": True, "stopped": coordinator.stop_background()}

    return router
