"""FastAPI routes for orders, returns and issues."""

from datetime import datetime

from fastapi import APIRouter, Depends

from backoffice.api.dependencies import get_service
from backoffice.api.schemas import (
    AddNoteRequest,
    AuditEntryResponse,
    BatchRequest,
    BatchResponse,
    ChangeIssuePriorityRequest,
    CompleteReturnRequest,
    FileReturnRequest,
    IssueResponse,
    OrderResponse,
    PlaceOrderRequest,
    RefundPaymentRequest,
    ReportIssueRequest,
    ReturnDecisionRequest,
    ReturnResponse,
    TransitionOrderRequest,
    UpdateIssueStatusRequest,
    VerifyPaymentRequest,
)
from backoffice.service import FulfillmentService


def _order(order) -> OrderResponse:
    return OrderResponse(**order.to_dict(), version=order.version)


def _return(request) -> ReturnResponse:
    return ReturnResponse(**request.to_dict(), version=request.version)


def _issue(issue) -> IssueResponse:
    return IssueResponse(**issue.to_dict(), version=issue.version)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
async def place_order(body: PlaceOrderRequest, service: FulfillmentService = Depends(get_service)) -> OrderResponse:
    order = service.place_order(
        order_id=body.order_id,
        customer=body.customer.model_dump(),
        items=[item.model_dump() for item in body.items],
        actor=body.actor,
    )
    return _order(order)


@order_router.get("", response_model=list[OrderResponse])
async def find_orders(
    status: str | None = None,
    payment_status: str | None = None,
    q: str | None = None,
    placed_from: datetime | None = None,
    placed_to: datetime | None = None,
    service: FulfillmentService = Depends(get_service),
) -> list[OrderResponse]:
    orders = service.find_orders(
        status=status,
        payment_status=payment_status,
        text=q,
        placed_from=placed_from,
        placed_to=placed_to,
    )
    return [_order(order) for order in orders]


@order_router.post("/batch", response_model=BatchResponse)
async def apply_batch(body: BatchRequest, service: FulfillmentService = Depends(get_service)) -> BatchResponse:
    result = service.apply_batch(
        body.order_ids,
        body.operation,
        body.actor,
        params={
            "shipments": {order_id: s.model_dump() for order_id, s in body.shipments.items()},
            "method": body.method,
            "note": body.note,
        },
        timeout=body.timeout,
    )
    return BatchResponse(**result.to_dict())


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, service: FulfillmentService = Depends(get_service)) -> OrderResponse:
    return _order(service.get_order(order_id))


@order_router.post("/{order_id}/transition", response_model=OrderResponse)
async def transition_order(
    order_id: str,
    body: TransitionOrderRequest,
    service: FulfillmentService = Depends(get_service),
) -> OrderResponse:
    shipment = body.shipment.model_dump() if body.shipment else None
    return _order(service.transition_order(order_id, body.status, body.actor, shipment=shipment))


@order_router.post("/{order_id}/payment/verify", response_model=OrderResponse)
async def verify_payment(
    order_id: str,
    body: VerifyPaymentRequest,
    service: FulfillmentService = Depends(get_service),
) -> OrderResponse:
    return _order(service.verify_payment(order_id, body.method, body.actor, note=body.note))


@order_router.post("/{order_id}/payment/refund", response_model=OrderResponse)
async def refund_payment(
    order_id: str,
    body: RefundPaymentRequest,
    service: FulfillmentService = Depends(get_service),
) -> OrderResponse:
    return _order(service.refund_payment(order_id, body.actor, note=body.note))


@order_router.post("/{order_id}/notes", status_code=201, response_model=AuditEntryResponse)
async def add_note(
    order_id: str,
    body: AddNoteRequest,
    service: FulfillmentService = Depends(get_service),
) -> AuditEntryResponse:
    entry = service.add_note(order_id, body.note, body.actor)
    return AuditEntryResponse(**entry.to_dict())


@order_router.get("/{order_id}/history", response_model=list[AuditEntryResponse])
async def order_history(order_id: str, service: FulfillmentService = Depends(get_service)) -> list[AuditEntryResponse]:
    return [AuditEntryResponse(**entry.to_dict()) for entry in service.order_history(order_id)]


@order_router.get("/{order_id}/returns", response_model=list[ReturnResponse])
async def order_returns(order_id: str, service: FulfillmentService = Depends(get_service)) -> list[ReturnResponse]:
    return [_return(request) for request in service.returns_for_order(order_id)]


@order_router.get("/{order_id}/issues", response_model=list[IssueResponse])
async def order_issues(order_id: str, service: FulfillmentService = Depends(get_service)) -> list[IssueResponse]:
    return [_issue(issue) for issue in service.issues_for_order(order_id)]


# ---------------------------------------------------------------------------
# Return Router
# ---------------------------------------------------------------------------
return_router = APIRouter(prefix="/returns", tags=["returns"])


@return_router.post("", status_code=201, response_model=ReturnResponse)
async def file_return(body: FileReturnRequest, service: FulfillmentService = Depends(get_service)) -> ReturnResponse:
    request = service.file_return(
        order_id=body.order_id,
        items=[item.model_dump() for item in body.items],
        reason=body.reason,
        actor=body.actor,
        restockable=body.restockable,
    )
    return _return(request)


@return_router.get("/{return_id}", response_model=ReturnResponse)
async def get_return(return_id: str, service: FulfillmentService = Depends(get_service)) -> ReturnResponse:
    return _return(service.get_return(return_id))


@return_router.post("/{return_id}/approve", response_model=ReturnResponse)
async def approve_return(
    return_id: str,
    body: ReturnDecisionRequest,
    service: FulfillmentService = Depends(get_service),
) -> ReturnResponse:
    return _return(service.approve_return(return_id, body.actor))


@return_router.post("/{return_id}/deny", response_model=ReturnResponse)
async def deny_return(
    return_id: str,
    body: ReturnDecisionRequest,
    service: FulfillmentService = Depends(get_service),
) -> ReturnResponse:
    return _return(service.deny_return(return_id, body.actor, note=body.note))


@return_router.post("/{return_id}/complete", response_model=ReturnResponse)
async def complete_return(
    return_id: str,
    body: CompleteReturnRequest,
    service: FulfillmentService = Depends(get_service),
) -> ReturnResponse:
    return _return(service.complete_return(return_id, body.refund_amount, body.actor))


# ---------------------------------------------------------------------------
# Issue Router
# ---------------------------------------------------------------------------
issue_router = APIRouter(prefix="/issues", tags=["issues"])


@issue_router.post("", status_code=201, response_model=IssueResponse)
async def report_issue(body: ReportIssueRequest, service: FulfillmentService = Depends(get_service)) -> IssueResponse:
    issue = service.report_issue(
        order_id=body.order_id,
        issue_type=body.type,
        description=body.description,
        actor=body.actor,
        priority=body.priority,
    )
    return _issue(issue)


@issue_router.get("/{issue_id}", response_model=IssueResponse)
async def get_issue(issue_id: str, service: FulfillmentService = Depends(get_service)) -> IssueResponse:
    return _issue(service.get_issue(issue_id))


@issue_router.post("/{issue_id}/status", response_model=IssueResponse)
async def update_issue_status(
    issue_id: str,
    body: UpdateIssueStatusRequest,
    service: FulfillmentService = Depends(get_service),
) -> IssueResponse:
    return _issue(service.update_issue(issue_id, body.status, body.actor, resolution_note=body.resolution))


@issue_router.post("/{issue_id}/priority", response_model=IssueResponse)
async def change_issue_priority(
    issue_id: str,
    body: ChangeIssuePriorityRequest,
    service: FulfillmentService = Depends(get_service),
) -> IssueResponse:
    return _issue(service.change_issue_priority(issue_id, body.priority, body.actor))
