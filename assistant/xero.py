"""
assistant/xero.py
-----------------
Xero accounting client and the Xero-backed ledger.

- ``XeroInvoice`` mirrors the Invoices API payload, with defaults for every
  field so a partially known invoice still validates.
- ``XeroClient`` posts invoices and looks up the tenant id over
  ``httpx.AsyncClient``.  Transport and HTTP errors are re-raised as
  ``ExternalOperationError`` carrying the URL and response text.
- ``XeroBooks`` keeps the in-memory ledger for transactions and balance
  sheets and mirrors every created invoice to Xero.

The OAuth handshake that yields the access token is not handled here; the
token and tenant id come from the environment.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Union

import httpx
from pydantic import BaseModel, Field, ValidationError

from . import config
from .bookkeeping import InMemoryBooks, _validate, calculate_due_date
from .errors import BookkeepingValidationError, ExternalOperationError
from .models import InvoiceCreationInput, InvoiceRecord

log = logging.getLogger("assistant.xero")


# =========================
# Schema
# =========================
class XeroTracking(BaseModel):
    TrackingCategoryID: str = "e2f2f732-e92a-4f3a-9c4d-ee4da0182a13"
    Name: str = "Region"
    Option: str = "North"


class XeroLineItem(BaseModel):
    ItemCode: str = "item-new"
    Description: str = "Invoice item"
    Quantity: str = "1"
    UnitAmount: str = "0.00"
    TaxType: str = "OUTPUT"
    TaxAmount: str = "0.00"
    LineAmount: str = "0.00"
    AccountCode: str = "200"
    Tracking: List[XeroTracking] = Field(default_factory=list)


class XeroContact(BaseModel):
    ContactID: str = ""
    Name: str = "Unknown Client"


class XeroInvoice(BaseModel):
    Type: str = "ACCREC"
    Contact: XeroContact = Field(default_factory=XeroContact)
    DateString: str = "1970-01-01"
    DueDateString: str = "1970-01-01"
    InvoiceNumber: str = "INV-0000"
    Reference: str = ""
    CurrencyCode: str = Field(default="USD", min_length=3, max_length=3)
    Status: str = "SUBMITTED"
    LineAmountTypes: str = "Inclusive"
    SubTotal: str = "0.00"
    TotalTax: str = "0.00"
    Total: str = "0.00"
    LineItems: List[XeroLineItem] = Field(default_factory=lambda: [XeroLineItem()])


def build_xero_invoice(data: InvoiceCreationInput, invoice_number: str, currency: str) -> XeroInvoice:
    """Map a validated invoice request onto the Xero payload."""
    amount = f"{data.amount:.2f}"
    try:
        return XeroInvoice(
            Contact=XeroContact(Name=data.client),
            DateString=data.date,
            DueDateString=calculate_due_date(data.date),
            InvoiceNumber=invoice_number,
            Reference=data.description[:255],
            CurrencyCode=currency,
            SubTotal=amount,
            Total=amount,
            LineItems=[XeroLineItem(Description=data.description, UnitAmount=amount, LineAmount=amount)],
        )
    except ValidationError as e:
        raise BookkeepingValidationError(f"Invalid Xero invoice: {e}") from e


# =========================
# HTTP client
# =========================
class XeroClient:
    def __init__(
        self,
        access_token: str = config.XERO_ACCESS_TOKEN,
        tenant_id: str = config.XERO_TENANT_ID,
        base_url: str = config.XERO_BASE_URL,
        timeout: float = config.XERO_TIMEOUT_SEC,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.access_token = access_token
        self.tenant_id = tenant_id
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    def _headers(self) -> Dict[str, str]:
        if not self.access_token:
            raise ExternalOperationError("XERO_ACCESS_TOKEN not set")
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        if self.tenant_id:
            headers["xero-tenant-id"] = self.tenant_id
        return headers

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        start = time.perf_counter()
        try:
            resp = await self._http.request(method, path, headers=self._headers(), **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise ExternalOperationError(
                f"Xero request failed at {path}: {e.response.status_code} {e.response.text[:500]}"
            ) from e
        except httpx.HTTPError as e:
            raise ExternalOperationError(f"Xero connection error at {path}: {e}") from e
        finally:
            elapsed_ms = int((time.perf_counter() - start) * 1000)
            log.debug("xero_request_done", extra={"kv": {"path": path, "elapsed_ms": elapsed_ms}})

    async def create_invoice(self, invoice: XeroInvoice) -> Dict[str, Any]:
        body = await self._request(
            "POST", "/api.xro/2.0/Invoices", json={"Invoices": [invoice.model_dump()]}
        )
        invoices = (body or {}).get("Invoices") or []
        if not invoices:
            raise ExternalOperationError("Xero returned no invoice in response")
        log.info("xero_invoice_created", extra={"kv": {"invoice_id": invoices[0].get("InvoiceID")}})
        return invoices[0]

    async def get_tenant_id(self) -> str:
        connections = await self._request("GET", "/connections")
        if not connections:
            raise ExternalOperationError("No Xero tenant found")
        return connections[0]["tenantId"]

    async def aclose(self) -> None:
        await self._http.aclose()


# =========================
# Xero-backed ledger
# =========================
class XeroBooks(InMemoryBooks):
    """In-memory ledger that also files every invoice in Xero."""

    def __init__(self, client: Optional[XeroClient] = None, currency: str = config.XERO_CURRENCY_CODE):
        super().__init__(currency=currency)
        self.client = client or XeroClient()

    async def create_invoice(self, data: Union[InvoiceCreationInput, Dict[str, Any]]) -> InvoiceRecord:
        validated = _validate(InvoiceCreationInput, data)
        invoice_number = f"INV-{self._invoice_counter:04d}"
        payload = build_xero_invoice(validated, invoice_number, self.currency)

        if not self.client.tenant_id:
            self.client.tenant_id = await self.client.get_tenant_id()
            log.info("xero_tenant_resolved", extra={"kv": {"tenant_id": self.client.tenant_id}})

        remote = await self.client.create_invoice(payload)

        invoice = self._build_invoice(validated, external_id=remote.get("InvoiceID"))
        self.invoices.append(invoice)
        log.info(
            "invoice_created",
            extra={"kv": {"invoice_number": invoice.invoice_number, "external_id": invoice.external_id}},
        )
        return invoice
