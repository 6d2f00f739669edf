"""
assistant/models.py
-------------------
Pydantic models shared by the classifier, dispatcher, memory store and
accounting backends.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import FailureKind

ISO_DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


class Intent(str, Enum):
    """Closed set of things a user can ask the assistant to do."""
    CREATE_INVOICE = "CREATE_INVOICE"
    RECORD_TRANSACTION = "RECORD_TRANSACTION"
    GENERATE_BALANCE_SHEET = "GENERATE_BALANCE_SHEET"
    GENERAL_INQUIRY = "GENERAL_INQUIRY"


def amount_to_str(value: Any) -> Optional[str]:
    """Render a model- or regex-supplied amount as a plain decimal string."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if float(value).is_integer():
            return str(int(value))
        return str(value)
    text = str(value).strip()
    return text or None


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        if not value or value.lower() in {"null", "none", "n/a"}:
            return None
    return value


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------
class IntentEntities(BaseModel):
    """Entities the model pulled out of a message."""
    client: Optional[str] = None
    amount: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, v: Any) -> Optional[str]:
        return amount_to_str(_blank_to_none(v))

    @field_validator("client", "description", "date", mode="before")
    @classmethod
    def _text(cls, v: Any) -> Optional[str]:
        v = _blank_to_none(v)
        return None if v is None else str(v)


class IntentResult(BaseModel):
    intent: Intent
    confidence: float = Field(ge=0.0, le=1.0)
    entities: IntentEntities = Field(default_factory=IntentEntities)
    reasoning: Optional[str] = None
    source: Literal["model", "fallback"] = "model"
    fallback_reason: Optional[FailureKind] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> float:
        v = float(v)
        return min(1.0, max(0.0, v))


class ExtractedFinancialData(BaseModel):
    """Fields found by the regex pattern extractor."""
    model_config = ConfigDict(populate_by_name=True)

    amount: Optional[str] = None
    date: Optional[str] = None
    client: Optional[str] = None
    email: Optional[str] = None
    invoice_number: Optional[str] = Field(default=None, alias="invoiceNumber")
    description: Optional[str] = None


class MergedEntities(BaseModel):
    """Model entities with regex findings filling the gaps."""
    client: Optional[str] = None
    amount: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None
    email: Optional[str] = None
    invoice_number: Optional[str] = None


# ---------------------------------------------------------------------------
# Conversation memory entries (tagged on ``type``)
# ---------------------------------------------------------------------------
class IntentDetectionEntry(BaseModel):
    type: Literal["intent_detection"] = "intent_detection"
    message: str
    intent: Intent
    timestamp: datetime = Field(default_factory=datetime.now)


class ConversationEntry(BaseModel):
    type: Literal["conversation"] = "conversation"
    user_message: str
    bot_response: str
    timestamp: datetime = Field(default_factory=datetime.now)


class PendingExtractedDataEntry(BaseModel):
    type: Literal["pending_extracted_data"] = "pending_extracted_data"
    data: Dict[str, Any]
    timestamp: datetime = Field(default_factory=datetime.now)


# ---------------------------------------------------------------------------
# Bookkeeping inputs and records
# ---------------------------------------------------------------------------
class InvoiceCreationInput(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    client: str = Field(min_length=1)
    amount: float = Field(gt=0)
    description: str = Field(min_length=1)
    date: str = Field(pattern=ISO_DATE_PATTERN)
    user_id: str


class TransactionInput(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    amount: float
    description: str = Field(min_length=1)
    date: str = Field(pattern=ISO_DATE_PATTERN)
    type: Literal["income", "expense"]
    user_id: str


class InvoiceRecord(BaseModel):
    id: int
    invoice_number: str
    customer_name: str
    amount: float
    description: str
    issue_date: str
    due_date: str
    status: str = "pending"
    currency: str = "USD"
    created_at: datetime = Field(default_factory=datetime.now)
    user_id: str
    external_id: Optional[str] = None


class TransactionRecord(BaseModel):
    id: int
    transaction_id: str
    amount: float
    description: str
    date: str
    type: Literal["income", "expense"]
    category: str
    currency: str = "USD"
    created_at: datetime = Field(default_factory=datetime.now)
    user_id: str


class BalanceSheet(BaseModel):
    totalRevenue: float
    totalExpenses: float
    netIncome: float
    outstandingInvoices: int
    outstandingAmount: float
    totalInvoices: int
    totalTransactions: int
    generatedAt: datetime = Field(default_factory=datetime.now)


# ---------------------------------------------------------------------------
# Document extraction
# ---------------------------------------------------------------------------
class ExtractedInvoiceData(BaseModel):
    """Invoice fields pulled from an uploaded document."""
    invoiceNumber: Optional[str] = None
    invoiceDate: Optional[str] = None
    dueDate: Optional[str] = None
    clientName: Optional[str] = None
    clientAddress: Optional[str] = None
    totalAmount: Optional[float] = None
    subtotal: Optional[float] = None
    taxAmount: Optional[float] = None
    description: Optional[str] = None
    vendorName: Optional[str] = None
    paymentTerms: Optional[str] = None
    currency: str = "USD"
    confidence: float = 0.0
    extractedFields: List[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Replies
# ---------------------------------------------------------------------------
class AssistantReply(BaseModel):
    """What every public entry point hands back: a message plus optional data."""
    message: str
    data: Optional[Dict[str, Any]] = None
    intent: Optional[Intent] = None
    confidence: Optional[float] = None
    failure: Optional[FailureKind] = None


class DocumentResult(BaseModel):
    message: str
    extractedData: ExtractedInvoiceData
    documentText: str
    suggestions: List[str] = Field(default_factory=list)
    invoice: Optional[Dict[str, Any]] = None
    autoCreated: bool = False
    autoCreateError: Optional[str] = None
    pending: bool = False
