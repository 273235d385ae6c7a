from pydantic import Field, StrictInt
from typing import Optional
from datetime import datetime

from app.models.core import StockAction
from app.schemas.common import CamelModel

class StockIn(CamelModel):
    product_type: str = Field(min_length=1)
    product_subtype: str = Field(min_length=1)
    quantity: StrictInt

class StockKeyIn(CamelModel):
    product_type: str = Field(min_length=1)
    product_subtype: str = Field(min_length=1)

class StockChangeOut(CamelModel):
    message: str
    product_type: str
    product_subtype: Optional[str] = None
    quantity: Optional[int] = None
    new_stock: Optional[int] = None

class StockHistoryOut(CamelModel):
    id: int
    product_type: str
    product_subtype: str
    action: StockAction
    quantity: Optional[int] = None
    old_quantity: Optional[int] = None
    new_quantity: Optional[int] = None
    timestamp: datetime

class SubscriptionKeys(CamelModel):
    p256dh: str = Field(min_length=1)
    auth: str = Field(min_length=1)

class SubscriptionIn(CamelModel):
    endpoint: str = Field(min_length=1)
    expiration_time: Optional[int] = None
    keys: SubscriptionKeys

class SubscriptionKeyIn(CamelModel):
    endpoint: str = Field(min_length=1)

class VapidKeyOut(CamelModel):
    public_key: str
