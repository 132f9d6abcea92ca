"""
Data Models
-----------
Value types passed between the extractor, matcher, ledger and
screenshot service.
"""

import uuid
from datetime import date as Date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def new_id() -> str:
    return uuid.uuid4().hex


class ScreenshotStatus(str, Enum):
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    MATCHED = "matched"
    CONFIRMED = "confirmed"
    ERROR = "error"


class PaymentMethod(str, Enum):
    CASH = "cash"
    UPI = "upi"


class ExtractedPaymentInfo(BaseModel):
    """Best-effort fields read from one screenshot's OCR text. Every field is optional."""

    amount: Optional[float] = Field(default=None, gt=0, description="Paid amount, 2 decimals")
    utr: Optional[str] = Field(default=None, description="Unique transaction reference, uppercase")
    date: Optional[Date] = Field(default=None, description="Transaction date")
    payer_name: Optional[str] = Field(default=None, description="Name after from / paid by / sender")
    upi_id: Optional[str] = Field(default=None, description="Payer or payee VPA")

    def is_empty(self) -> bool:
        return all(v is None for v in self.model_dump().values())


class Client(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    phone: str = ""
    rate_per_tray: float = Field(ge=0)
    farm_id: Optional[str] = None


class Payment(BaseModel):
    id: str = Field(default_factory=new_id)
    client_id: str
    amount: float = Field(ge=0)
    payment_method: PaymentMethod = PaymentMethod.UPI
    utr: Optional[str] = None
    date: Date = Field(default_factory=Date.today)
    sale_id: Optional[str] = None
    screenshot: Optional[str] = None
    confirmed: bool = False

    # Populated by repository lookups, never persisted
    client: Optional[Client] = Field(default=None, exclude=True)


class ScreenshotUpload(BaseModel):
    id: str = Field(default_factory=new_id)
    filename: str
    original_name: str
    path: str
    hash: str
    size: int = 0
    status: ScreenshotStatus = ScreenshotStatus.UPLOADED
    extracted: ExtractedPaymentInfo = Field(default_factory=ExtractedPaymentInfo)
    matched_client_id: Optional[str] = None
    payment_id: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)

    def touch(self):
        self.updated_at = datetime.now()
