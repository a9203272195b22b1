import json
from datetime import datetime
from pydantic import BaseModel, Field, computed_field, field_validator
from typing import Any, Dict, List, Optional


class OrderItemIn(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    color: Optional[str] = None
    size: Optional[str] = None
    # Hint only; the catalog price is charged
    price: Optional[float] = None
    product_name: Optional[str] = None


class OrderCreate(BaseModel):
    items: Optional[List[OrderItemIn]] = None
    total: Optional[float] = None
    customer_email: Optional[str] = None
    shipping_address: Optional[Dict[str, Any]] = None
    payment_method: Optional[str] = None
    status: Optional[str] = None
    tax_amount: float = 0
    shipping_amount: float = 0
    discount_amount: float = 0
    notes: Optional[str] = None
    user_id: Optional[int] = Field(
        default=None,
        description="Deprecated and ignored: the owner is taken from the bearer token.",
    )


class OrderStatusUpdate(BaseModel):
    status: Optional[str] = None
    tracking_number: Optional[str] = None


class OrderItemOut(BaseModel):
    id: int
    order_id: int
    product_id: int
    quantity: int
    price: float
    size: Optional[str] = None
    color: Optional[str] = None
    product_name: Optional[str] = None
    product_brand: Optional[str] = None
    product_image: Optional[str] = None

    class Config:
        from_attributes = True


class OrderOut(BaseModel):
    id: int
    order_number: str
    user_id: Optional[int] = None
    customer_email: Optional[str] = None
    status: str
    payment_status: str
    payment_method: Optional[str] = None
    subtotal: float
    tax_amount: float
    shipping_amount: float
    discount_amount: float
    total_amount: float
    shipping_address: Optional[Dict[str, Any]] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemOut] = []

    class Config:
        from_attributes = True

    @field_validator("shipping_address", mode="before")
    @classmethod
    def parse_shipping_address(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value) if value else None
        return value

    @computed_field
    @property
    def total(self) -> float:
        return self.total_amount
