from pydantic import Field, StrictInt, model_validator
from typing import Optional, Literal
from datetime import datetime

from app.models.core import PaymentStatus, DeliveryStatus, Priority, ReturnType
from app.schemas.common import CamelModel

PaymentStatusLiteral = Literal["unpaid", "partially_paid", "paid"]
PriorityLiteral = Literal["low", "normal", "high", "urgent"]
ReturnTypeLiteral = Literal["full", "partial"]

class OrderIn(CamelModel):
    order_id: Optional[str] = Field(default=None, max_length=64)
    customer_name: str = Field(min_length=1)
    customer_phone: str = Field(min_length=1)
    product_type: str = Field(min_length=1)
    product_subtype: str = Field(min_length=1)
    quantity: StrictInt = Field(gt=0)
    total_amount: float = Field(gt=0)
    amount_paid: float = Field(default=0, ge=0)
    payment_status: Optional[PaymentStatusLiteral] = None
    delivery_location: str = Field(min_length=1)
    notes: str = ""
    priority: Optional[PriorityLiteral] = None

class OrderOut(CamelModel):
    id: int
    order_id: str
    customer_name: str
    customer_phone: str
    product_type: str
    product_subtype: str
    quantity: int
    returned_quantity: int
    remaining_quantity: int
    total_amount: float
    amount_paid: float
    payment_status: PaymentStatus
    delivery_location: str
    delivery_status: DeliveryStatus
    priority: Priority
    notes: str
    worker_notes: Optional[str] = None
    worker_name: Optional[str] = None
    delivered_by: Optional[str] = None
    return_type: Optional[ReturnType] = None
    created_at: datetime
    updated_at: datetime
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    notes_updated_at: Optional[datetime] = None

class DeliveryIn(CamelModel):
    delivery_status: str
    delivered_by: Optional[str] = None

class PaymentIn(CamelModel):
    payment_status: Optional[PaymentStatusLiteral] = None
    amount_paid: Optional[float] = None

    @model_validator(mode="after")
    def _one_of(self):
        if self.payment_status is None and self.amount_paid is None:
            raise ValueError("paymentStatus or amountPaid is required")
        return self

class PriorityIn(CamelModel):
    priority: str

class WorkerNotesIn(CamelModel):
    worker_notes: str = ""
    worker_name: Optional[str] = None

class ReturnIn(CamelModel):
    quantity: StrictInt = Field(gt=0)
    return_type: ReturnTypeLiteral

class OrderDeleted(CamelModel):
    message: str
    id: int
