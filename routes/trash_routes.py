import logging
from fastapi import APIRouter, Depends, HTTPException, Query
from datetime import timedelta
from typing import List

from config import EXPIRING_SOON_DAYS
from dependencies import CurrentUser, get_current_user, get_retention_manager
from errors import SlotSwapError
from models.slot_models import BulkResult, BulkSlotIds, SlotDetails
from retention_service import RetentionManager

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slots", tags=["trash"])

@router.get("/trash", response_model=List[SlotDetails])
async def get_trash(
    user: CurrentUser = Depends(get_current_user),
    retention: RetentionManager = Depends(get_retention_manager),
):
    try:
        return await retention.list_trash(user.user_id)
    except Exception:
        logger.exception("Get trash error")
        raise HTTPException(status_code=500, detail="Server error")

@router.get("/expiring", response_model=List[SlotDetails])
async def get_expiring_slots(
    days: int = Query(EXPIRING_SOON_DAYS, ge=1, le=30),
    user: CurrentUser = Depends(get_current_user),
    retention: RetentionManager = Depends(get_retention_manager),
):
    try:
        return [slot async for slot in retention.list_expiring_soon(user.user_id, timedelta(days=days))]
    except Exception:
        logger.exception("Get expiring slots error")
        raise HTTPException(status_code=500, detail="Server error")

@router.post("/bulk/restore", response_model=BulkResult)
async def bulk_restore(
    body: BulkSlotIds,
    user: CurrentUser = Depends(get_current_user),
    retention: RetentionManager = Depends(get_retention_manager),
):
    try:
        return await retention.bulk_restore(body.slot_ids, user.user_id, user.is_admin)
    except Exception:
        logger.exception("Bulk restore error")
        raise HTTPException(status_code=500, detail="Server error")

@router.post("/bulk/delete", response_model=BulkResult)
async def bulk_permanent_delete(
    body: BulkSlotIds,
    user: CurrentUser = Depends(get_current_user),
    retention: RetentionManager = Depends(get_retention_manager),
):
    try:
        return await retention.bulk_permanent_delete(body.slot_ids, user.user_id, user.is_admin)
    except Exception:
        logger.exception("Bulk delete error")
        raise HTTPException(status_code=500, detail="Server error")

@router.delete("/{slot_id}", response_model=SlotDetails)
async def soft_delete_slot(
    slot_id: str,
    user: CurrentUser = Depends(get_current_user),
    retention: RetentionManager = Depends(get_retention_manager),
):
    try:
        return await retention.soft_delete(slot_id, user.user_id, user.is_admin)
    except SlotSwapError:
        raise
    except Exception:
        logger.exception("Delete slot error")
        raise HTTPException(status_code=500, detail="Server error")

@router.post("/{slot_id}/restore", response_model=SlotDetails)
async def restore_slot(
    slot_id: str,
    user: CurrentUser = Depends(get_current_user),
    retention: RetentionManager = Depends(get_retention_manager),
):
    try:
        return await retention.restore(slot_id, user.user_id, user.is_admin)
    except SlotSwapError:
        raise
    except Exception:
        logger.exception("Restore slot error")
        raise HTTPException(status_code=500, detail="Server error")

@router.delete("/{slot_id}/permanent")
async def permanently_delete_slot(
    slot_id: str,
    user: CurrentUser = Depends(get_current_user),
    retention: RetentionManager = Depends(get_retention_manager),
):
    try:
        slot = await retention.permanent_delete(slot_id, user.user_id, user.is_admin)
        return {"message": "Slot permanently deleted", "slot_id": slot["id"]}
    except SlotSwapError:
        raise
    except Exception:
        logger.exception("Permanent delete slot error")
        raise HTTPException(status_code=500, detail="Server error")
