"""
Health Event Schemas
"""

from typing import Literal, Optional

from companion.schemas.base import CamelModel

HealthEventType = Literal["damage", "healing", "status"]


class HealthEventRead(CamelModel):
    id: str
    player_id: str
    type: HealthEventType
    value: Optional[int] = None
    status_effect: Optional[str] = None
    description: str = ""
    confirmed: bool = False


class HealthConfirm(CamelModel):
    event_id: str
    confirmed: bool
    modified_value: Optional[int] = None


class PlayerUpdated(CamelModel):
    player_id: str
    current_hp: int
