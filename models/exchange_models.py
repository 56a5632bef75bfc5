from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from enum import Enum

from models.slot_models import SlotDetails

class ExchangeStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"

class ExchangeCreate(BaseModel):
    offered_slot_id: str = Field(min_length=1)
    target_slot_id: str = Field(min_length=1)

class ExchangeDecision(BaseModel):
    accept: bool

class ExchangeDetails(BaseModel):
    id: str
    requester_id: str
    requestee_id: str
    requester_slot_id: str
    requestee_slot_id: str
    status: ExchangeStatus
    created_at: datetime
    resolved_at: Optional[datetime] = None

class UserExchanges(BaseModel):
    incoming: List[ExchangeDetails] = []
    outgoing: List[ExchangeDetails] = []

class ExchangeResolution(BaseModel):
    request: ExchangeDetails
    requester_slot: SlotDetails
    requestee_slot: SlotDetails
