"""Pydantic request/response schemas for the backoffice API.

These are external contracts, kept separate from the Protean aggregates.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class CustomerSchema(BaseModel):
    name: str
    email: str | None = None
    phone: str | None = None


class OrderItemSchema(BaseModel):
    product_id: str
    name: str
    quantity: int = Field(ge=1)
    unit_price: float = Field(ge=0)


class ShipmentSchema(BaseModel):
    carrier: str
    tracking_number: str
    tracking_url: str | None = None


class ReturnItemSchema(BaseModel):
    product_id: str
    quantity: int


# ---------------------------------------------------------------------------
# Order Request Schemas
# ---------------------------------------------------------------------------
class PlaceOrderRequest(BaseModel):
    order_id: str
    customer: CustomerSchema
    items: list[OrderItemSchema] = Field(min_length=1)
    actor: str

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "order_id": "ORD-1001",
                    "customer": {"name": "Jane Wanjiku", "email": "jane@example.com", "phone": "+254700000000"},
                    "items": [{"product_id": "SKU-1", "name": "Shea butter", "quantity": 2, "unit_price": 15.0}],
                    "actor": "staff-001",
                }
            ]
        }
    }


class TransitionOrderRequest(BaseModel):
    status: str
    actor: str
    shipment: ShipmentSchema | None = None


class VerifyPaymentRequest(BaseModel):
    method: str
    actor: str
    note: str = ""


class RefundPaymentRequest(BaseModel):
    actor: str
    note: str = "payment refunded"


class AddNoteRequest(BaseModel):
    note: str = Field(min_length=1)
    actor: str


class BatchRequest(BaseModel):
    order_ids: list[str]
    operation: str
    actor: str
    shipments: dict[str, ShipmentSchema] = Field(default_factory=dict)
    method: str = "manual"
    note: str = ""
    timeout: float | None = Field(default=None, gt=0)


# ---------------------------------------------------------------------------
# Return Request Schemas
# ---------------------------------------------------------------------------
class FileReturnRequest(BaseModel):
    order_id: str
    items: list[ReturnItemSchema]
    reason: str
    actor: str
    restockable: bool = True


class ReturnDecisionRequest(BaseModel):
    actor: str
    note: str = ""


class CompleteReturnRequest(BaseModel):
    actor: str
    refund_amount: float = Field(allow_inf_nan=False)


# ---------------------------------------------------------------------------
# Issue Request Schemas
# ---------------------------------------------------------------------------
class ReportIssueRequest(BaseModel):
    order_id: str
    type: str
    description: str
    actor: str
    priority: str = "Medium"


class UpdateIssueStatusRequest(BaseModel):
    status: str
    actor: str
    resolution: str | None = None


class ChangeIssuePriorityRequest(BaseModel):
    priority: str
    actor: str


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------
class OrderResponse(BaseModel):
    id: str
    status: str
    payment_status: str
    total: float
    version: int
    customer: dict
    items: list[dict]
    shipment: dict | None = None
    payment_record: dict | None = None
    placed_at: datetime | None = None
    updated_at: datetime | None = None


class ReturnResponse(BaseModel):
    id: str
    order_id: str
    status: str
    reason: str
    items: list[dict]
    restockable: bool
    decision_note: str | None = None
    refund_amount: float | None = None
    requested_at: datetime | None = None
    processed_at: datetime | None = None
    version: int


class IssueResponse(BaseModel):
    id: str
    order_id: str
    type: str
    priority: str
    status: str
    description: str
    resolution: str | None = None
    reported_at: datetime | None = None
    resolved_at: datetime | None = None
    version: int


class AuditEntryResponse(BaseModel):
    id: str
    order_id: str
    timestamp: datetime
    actor: str
    event_kind: str
    note: str | None = None
    sequence: int


class BatchFailureResponse(BaseModel):
    order_id: str
    kind: str
    retryable: bool
    message: str


class BatchResponse(BaseModel):
    succeeded: list[str]
    failed: list[BatchFailureResponse]
    cancelled: bool
