"""Request bodies for the gemstock JSON API.

Quantity bounds are checked by the engine, not here, so a negative delta comes
back as a 400 with the engine's message rather than a 422.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class QuantityChangeRequest(BaseModel):
    """Used by: POST /parcels/{parcel_id}/add and /reduce"""

    stones_delta: int = 0
    carat_delta: Decimal = Decimal("0")
    comment: str = ""


class EditRequest(BaseModel):
    """Used by: PATCH /parcels/{parcel_id}"""

    fields: Dict[str, Any] = Field(default_factory=dict)
    comment: str = ""

    class Config:
        json_schema_extra = {
            "example": {
                "fields": {"price_per_ct": "1450.00", "clarity": "VS1"},
                "comment": "Repriced after supplier update",
            }
        }


class StatusNoteRequest(BaseModel):
    """Used by: POST /orders/{order_id}/status-notes

    Either ``content`` or ``item_count`` (casting order note) must be given.
    """

    content: Optional[str] = None
    item_count: Optional[int] = Field(default=None, ge=0)
    status: Optional[str] = None
