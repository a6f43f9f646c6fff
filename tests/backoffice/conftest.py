import pytest
from protean.integrations.pytest import DomainFixture

from backoffice.persistence import repositories_over
from backoffice.persistence.store import Store
from backoffice.service import FulfillmentService
from backoffice.shared.clock import FrozenClock
from backoffice.shared.publisher import RecordingPublisher


@pytest.fixture(scope="session")
def backoffice_bed():
    from backoffice.domain import backoffice

    bed = DomainFixture(backoffice)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(backoffice_bed):
    with backoffice_bed.domain_context():
        yield


@pytest.fixture()
def clock():
    return FrozenClock()


@pytest.fixture()
def publisher():
    return RecordingPublisher()


@pytest.fixture()
def store():
    return Store()


@pytest.fixture()
def repositories(store):
    return repositories_over(store, timeout=5.0)


@pytest.fixture()
def service(repositories, clock, publisher):
    return FulfillmentService(
        orders=repositories.orders,
        returns=repositories.returns,
        issues=repositories.issues,
        audit_sink=repositories.audit_sink,
        clock=clock,
        publisher=publisher,
        store=repositories.store,
    )


def item(product_id="SKU-1", name="Shea butter", quantity=1, unit_price=10.0):
    return {"product_id": product_id, "name": name, "quantity": quantity, "unit_price": unit_price}


@pytest.fixture()
def place(service):
    """Place an order through the service: ``place("ORD-1", items=[...])``."""

    def _place(order_id="ORD-1", items=None, customer=None):
        return service.place_order(
            order_id,
            customer or {"name": "Jane Wanjiku", "email": "jane@example.com", "phone": "+254700000001"},
            items or [item(unit_price=30.0), item("SKU-2", "Body lotion", 1, 20.0)],
            actor="staff-1",
        )

    return _place
