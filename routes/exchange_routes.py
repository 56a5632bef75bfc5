import logging
from fastapi import APIRouter, Depends, HTTPException
from typing import List

from dependencies import CurrentUser, get_current_user, get_exchange_coordinator
from errors import SlotSwapError
from exchange_service import ExchangeCoordinator
from models.exchange_models import ExchangeCreate, ExchangeDecision, ExchangeDetails, ExchangeResolution, UserExchanges
from models.slot_models import SlotDetails

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/exchanges", tags=["exchanges"])

@router.get("/open-slots", response_model=List[SlotDetails])
async def get_open_slots(
    user: CurrentUser = Depends(get_current_user),
    coordinator: ExchangeCoordinator = Depends(get_exchange_coordinator),
):
    try:
        return await coordinator.list_open_slots(user.user_id)
    except Exception:
        logger.exception("Get open slots error")
        raise HTTPException(status_code=500, detail="Server error")

@router.post("/request", response_model=ExchangeDetails, status_code=201)
async def request_exchange(
    exchange: ExchangeCreate,
    user: CurrentUser = Depends(get_current_user),
    coordinator: ExchangeCoordinator = Depends(get_exchange_coordinator),
):
    try:
        return await coordinator.create_request(user.user_id, exchange.offered_slot_id, exchange.target_slot_id)
    except SlotSwapError:
        raise
    except Exception:
        logger.exception("Exchange request error")
        raise HTTPException(status_code=500, detail="Server error")

@router.post("/{exchange_id}/respond", response_model=ExchangeResolution)
async def respond_to_exchange(
    exchange_id: str,
    decision: ExchangeDecision,
    user: CurrentUser = Depends(get_current_user),
    coordinator: ExchangeCoordinator = Depends(get_exchange_coordinator),
):
    try:
        return await coordinator.resolve_request(exchange_id, user.user_id, decision.accept)
    except SlotSwapError:
        raise
    except Exception:
        logger.exception("Exchange response error")
        raise HTTPException(status_code=500, detail="Server error")

@router.get("/mine", response_model=UserExchanges)
async def get_my_exchanges(
    user: CurrentUser = Depends(get_current_user),
    coordinator: ExchangeCoordinator = Depends(get_exchange_coordinator),
):
    try:
        return await coordinator.list_user_requests(user.user_id)
    except Exception:
        logger.exception("Get my exchanges error")
        raise HTTPException(status_code=500, detail="Server error")
