"""Schemas for offers synthesized from form submissions."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class OfferDetailRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    description: str
    service_category_id: str | None
    service_subcategory_id: str | None


class OfferRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    offer_number: str
    customer_id: UUID
    title: str | None
    requirements: str
    customer_comments: str | None
    our_comments: str | None
    address: str | None
    status: str
    created_by: UUID | None
    created_at: datetime


class OfferSynthesisRead(BaseModel):
    offer: OfferRead
    offer_details: list[OfferDetailRead]
