"""Test d'intégration : historique → sélection → devis → calcul → validation → rafraîchissement."""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any

from refund_desk.config.loader import AppConfig
from refund_desk.engine.session import SessionState
from refund_desk.gateway.client import RefundGatewayClient
from refund_desk.service import RefundService

if TYPE_CHECKING:
    from tests.conftest import FakeRefundBackend

TOWEL = "gid://shopify/LineItem/12"
MUG = "gid://shopify/LineItem/11"


def test_partial_refund_after_previous_refund(
    sample_config: AppConfig,
    gateway: RefundGatewayClient,
    backend: FakeRefundBackend,
    order_payload: dict[str, Any],
    history_payload: dict[str, Any],
) -> None:
    """Tea Towel : 1 déjà remboursé sur 3, expédition : 5.00 déjà remboursés sur 20.00."""
    backend.history["5001001"] = history_payload
    backend.responses["/calculate"] = (200, {"transactionId": "9001", "amount": "46.50"})
    backend.responses["/refund"] = (200, {"transactionId": "9002", "amount": "46.50"})
    service = RefundService(sample_config, gateway)

    order = service.load_order(order_payload)
    session = service.open_session(order)
    session.set_quantity(TOWEL, 2)
    session.request_shipping()

    local = session.quote()
    assert local.product_subtotal == Decimal("24.00")
    assert local.product_tax == Decimal("6.00")
    assert local.shipping_amount == Decimal("15.00")
    assert local.shipping_tax == Decimal("1.50")
    assert local.refund_total == Decimal("46.50")

    gateway_quote = service.calculate(session)
    assert gateway_quote.amount == local.refund_total

    result = service.commit(session)
    assert result.transaction_id == "9002"
    assert session.state is SessionState.COMMITTED

    calculate_body, refund_body = backend.bodies("/calculate")[0], backend.bodies("/refund")[0]
    assert calculate_body["refund"]["refund_line_items"] == refund_body["refund"]["refund_line_items"]
    assert refund_body["refund"]["shipping"] == {"amount": "15.00"}
    assert refund_body["refund"]["currency"] == "AUD"
    assert refund_body["refund"]["transactions"][0]["amount"] == "46.50"


def test_edit_after_calculation_requires_recalculation(
    sample_config: AppConfig,
    gateway: RefundGatewayClient,
    backend: FakeRefundBackend,
    order_payload: dict[str, Any],
) -> None:
    service = RefundService(sample_config, gateway)
    session = service.open_session(service.load_order(order_payload, with_history=False))
    session.set_quantity(MUG, 2)
    service.calculate(session)

    session.set_quantity(MUG, 3)
    assert not session.can_commit
    assert session.quote().refund_total == Decimal("82.50")

    backend.responses["/calculate"] = (200, {"transactionId": "9003", "amount": "82.50"})
    service.calculate(session)
    service.commit(session)

    assert backend.bodies("/refund")[0]["refund"]["transactions"][0] == {
        "parent_id": "9003",
        "amount": "82.50",
        "kind": "refund",
        "gateway": "manual",
    }
    assert backend.bodies("/refund")[0]["refund"]["refund_line_items"] == [{"line_item_id": "11", "quantity": 3}]


def test_full_refund_then_refresh_leaves_nothing_refundable(
    sample_config: AppConfig,
    gateway: RefundGatewayClient,
    backend: FakeRefundBackend,
    order_payload: dict[str, Any],
) -> None:
    service = RefundService(sample_config, gateway)
    order = service.load_order(order_payload)
    session = service.open_session(order)
    for item in order.line_items:
        session.set_quantity(item.id, item.quantity)
    session.request_shipping()
    assert session.quote().refund_total == Decimal("227.00")
    service.calculate(session)
    service.commit(session)

    backend.history["5001001"] = {
        "success": True,
        "refunds": [
            {
                "id": "8802",
                "refund_line_items": [
                    {"line_item_id": "11", "quantity": 4},
                    {"line_item_id": "12", "quantity": 3},
                    {"line_item_id": "13", "quantity": 1},
                ],
                "refund_shipping": [{"title": "Standard", "total": "20.00", "tax": "2.00"}],
            }
        ],
    }
    refreshed = service.refresh(order)
    assert all(item.quantity == 0 for item in refreshed.line_items)
    assert refreshed.shipping is not None
    assert refreshed.shipping.max_refundable == Decimal("0")
