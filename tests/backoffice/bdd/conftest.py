"""Shared BDD fixtures and step definitions for the backoffice."""

import pytest
from pytest_bdd import given, parsers, then, when

from backoffice.errors import FulfillmentError


@pytest.fixture()
def context():
    """Holds the last error and the aggregates a scenario is working on."""
    return {"error": None, "return_id": None, "issue_id": None, "batch": None}


def attempt(context, action):
    context["error"] = None
    try:
        return action()
    except FulfillmentError as exc:
        context["error"] = exc
        return None


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('an order "{order_id}" worth {amount:f} in Processing with payment Pending'))
def _(service, order_id, amount):
    service.place_order(
        order_id,
        {"name": "Jane Wanjiku", "email": "jane@example.com"},
        [
            {"product_id": "SKU-1", "name": "Hair oil", "quantity": 1, "unit_price": round(amount - 20.0, 2)},
            {"product_id": "SKU-2", "name": "Face cream", "quantity": 1, "unit_price": 20.0},
        ],
        actor="staff-1",
    )


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('staff move "{order_id}" to "{status}"'))
def _(service, context, order_id, status):
    attempt(context, lambda: service.transition_order(order_id, status, "staff-1"))


@when(parsers.cfparse('staff ship "{order_id}" with carrier "{carrier}" and tracking "{tracking}"'))
def _(service, context, order_id, carrier, tracking):
    attempt(
        context,
        lambda: service.transition_order(
            order_id, "Shipped", "staff-1", shipment={"carrier": carrier, "tracking": tracking}
        ),
    )


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the action fails with "{kind}"'))
def _(context, kind):
    assert context["error"] is not None, "Expected the action to fail"
    assert context["error"].kind == kind


@then(parsers.cfparse('order "{order_id}" is "{status}" with payment "{payment_status}"'))
def _(service, order_id, status, payment_status):
    order = service.get_order(order_id)
    assert order.status == status
    assert order.payment_status == payment_status
