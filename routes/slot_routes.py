import logging
from fastapi import APIRouter, Depends, HTTPException
from typing import List

from dependencies import CurrentUser, get_current_user, get_slot_service
from errors import SlotSwapError
from models.slot_models import SlotCreate, SlotDetails, SlotTransfer, SlotUpdate
from slot_service import SlotService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/slots", tags=["slots"])

@router.post("", response_model=SlotDetails, status_code=201)
async def create_slot(
    slot: SlotCreate,
    user: CurrentUser = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    try:
        return await service.create_slot(user.user_id, slot)
    except SlotSwapError:
        raise
    except Exception:
        logger.exception("Create slot error")
        raise HTTPException(status_code=500, detail="Server error")

@router.get("", response_model=List[SlotDetails])
async def get_my_slots(
    user: CurrentUser = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    try:
        return await service.list_user_slots(user.user_id)
    except Exception:
        logger.exception("Get slots error")
        raise HTTPException(status_code=500, detail="Server error")

@router.get("/{slot_id}", response_model=SlotDetails)
async def get_slot(
    slot_id: str,
    user: CurrentUser = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    try:
        return await service.get_slot(slot_id, user.user_id, user.is_admin)
    except SlotSwapError:
        raise
    except Exception:
        logger.exception("Get slot error")
        raise HTTPException(status_code=500, detail="Server error")

@router.put("/{slot_id}", response_model=SlotDetails)
async def update_slot(
    slot_id: str,
    updated_data: SlotUpdate,
    user: CurrentUser = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    try:
        return await service.update_slot(slot_id, user.user_id, updated_data, user.is_admin)
    except SlotSwapError:
        raise
    except Exception:
        logger.exception("Update slot error")
        raise HTTPException(status_code=500, detail="Server error")

@router.put("/{slot_id}/owner", response_model=SlotDetails)
async def transfer_slot(
    slot_id: str,
    transfer: SlotTransfer,
    user: CurrentUser = Depends(get_current_user),
    service: SlotService = Depends(get_slot_service),
):
    try:
        return await service.transfer_slot(slot_id, user.user_id, transfer.new_owner_id, user.is_admin)
    except SlotSwapError:
        raise
    except Exception:
        logger.exception("Transfer slot error")
        raise HTTPException(status_code=500, detail="Server error")
