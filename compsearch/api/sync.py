"""
FastAPI router for synchronization control.

Implements:
- POST /sync: run a full bulk synchronization and return its SyncReport
- GET /sync/status: whether change capture is running, queue depth and counters
"""

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from compsearch.core.dependencies import SyncControllerDep
from compsearch.core.exceptions import StoreError
from compsearch.models import SyncReport

logger = logging.getLogger(__name__)

router = APIRouter()


class ChangeCaptureStatus(BaseModel):
    """Response model for the change-capture status endpoint."""
    running: bool = Field(..., description="Listener connected and subscriber consuming")
    queued: int = Field(default=0, description="Events waiting to be applied")
    applied: int = Field(default=0, description="Events applied since start")
    failed: int = Field(default=0, description="Events dropped after a failure")
    overflowed: int = Field(default=0, description="Events dropped because the queue was full")


@router.post("/sync", response_model=SyncReport)
async def run_sync(controller: SyncControllerDep) -> SyncReport:
    """
    Resynchronize the search index from PostgreSQL.

    Window failures are reported in the body, not as an error status.

    Raises:
        HTTPException(503) if the relational row count cannot be read
    """
    try:
        report = await controller.sync_all()
    except StoreError as e:
        logger.error(f"Bulk sync could not start: {e}")
        raise HTTPException(status_code=503, detail=f"Bulk sync failed: {str(e)}")
    except Exception as e:
        logger.exception("Error running bulk sync")
        raise HTTPException(status_code=500, detail=f"Bulk sync failed: {str(e)}")

    logger.info(f"Bulk sync via API: {report.processed} processed, {report.failed} failed")
    return report


@router.get("/sync/status", response_model=ChangeCaptureStatus)
async def get_sync_status(controller: SyncControllerDep) -> ChangeCaptureStatus:
    channel = controller.subscriber.channel
    return ChangeCaptureStatus(
        running=controller.change_capture_running,
        queued=channel.qsize(),
        applied=controller.subscriber.applied,
        failed=controller.subscriber.failed,
        overflowed=channel.dropped,
    )
