from datetime import datetime
from pydantic import BaseModel
from typing import Optional


class AddressIn(BaseModel):
    """Body for create and update. Required fields are checked by the handler
    so that a missing one is reported as a 400 with a readable message."""

    id: Optional[int] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    is_default: Optional[bool] = None


class AddressOut(BaseModel):
    id: int
    user_id: int
    first_name: str
    last_name: str
    address_line_1: str
    address_line_2: str
    city: str
    state: str
    postal_code: str
    country: str
    phone: str
    is_default: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MessageOut(BaseModel):
    message: str
