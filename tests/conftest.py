from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from refund_desk.config.loader import AppConfig, GatewayConfig, OrdersConfig, ProviderConfig, ShopConfig
from refund_desk.gateway.client import RefundGatewayClient


class FakeRefundBackend:
    """Passerelle simulée : réponses par chemin, requêtes enregistrées.

    Une valeur de ``responses`` peut être une exception httpx, levée telle quelle
    pour simuler un échec réseau.
    """

    def __init__(self) -> None:
        self.responses: dict[str, Any] = {
            "/calculate": (200, {"transactionId": "9001", "amount": "55.00"}),
            "/refund": (200, {"transactionId": "9002", "amount": "55.00"}),
            "/paypal-refund": (200, {"success": True, "paypalRefundId": "PP-REF-1"}),
            "/stripe-refund": (200, {"success": True, "stripeRefundId": "re_1"}),
        }
        self.history: dict[str, Any] = {}
        self.requests: list[tuple[str, str, Any]] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))

        if path.startswith("/get-refunds/"):
            order_id = path.rsplit("/", 1)[-1]
            return httpx.Response(200, json=self.history.get(order_id, {"success": True, "refunds": []}))

        response = self.responses.get(path, (404, {"error": "Not found"}))
        if isinstance(response, Exception):
            raise response
        status, payload = response
        return httpx.Response(status, json=payload)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def bodies(self, path: str) -> list[Any]:
        return [body for _, p, body in self.requests if p == path]


@pytest.fixture
def fixtures_dir() -> Path:
    """Chemin vers le répertoire de fixtures."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def order_payload(fixtures_dir: Path) -> dict[str, Any]:
    """Commande #1001 (3 articles, expédition 20.00 dont 2.00 de taxe)."""
    return json.loads((fixtures_dir / "orders" / "order_1001.json").read_text(encoding="utf-8"))


@pytest.fixture
def paypal_order_payload(fixtures_dir: Path) -> dict[str, Any]:
    """Commande #1002 payée par PayPal, identifiant stocké en metafield."""
    return json.loads((fixtures_dir / "orders" / "order_1002_paypal.json").read_text(encoding="utf-8"))


@pytest.fixture
def history_payload(fixtures_dir: Path) -> dict[str, Any]:
    """Historique de #1001 : 1 Tea Towel et 5.00 d'expédition déjà remboursés."""
    return json.loads((fixtures_dir / "orders" / "refunds_1001.json").read_text(encoding="utf-8"))


@pytest.fixture
def sample_config() -> AppConfig:
    """AppConfig valide minimale pour les tests."""
    return AppConfig(
        shop=ShopConfig(
            currency="AUD",
            default_note="Refund via app",
            default_gateway="manual",
            default_location_id="70116966605",
            notify_customer=True,
        ),
        gateway=GatewayConfig(
            base_url="https://refunds.test",
            endpoints={
                "calculate": "/calculate",
                "refund": "/refund",
                "history": "/get-refunds/{order_id}",
            },
            timeout=5.0,
            providers={
                "paypal": ProviderConfig(
                    endpoint="/paypal-refund",
                    metafield="paypal_transaction_id",
                    id_field="transactionId",
                    refund_id_field="paypalRefundId",
                    label="PayPal",
                ),
                "stripe": ProviderConfig(
                    endpoint="/stripe-refund",
                    metafield="stripe_charge_id",
                    id_field="chargeId",
                    refund_id_field="stripeRefundId",
                    label="Stripe",
                ),
            },
        ),
        orders=OrdersConfig(page_size=25, max_orders=1000, excluded_sources=["web"]),
    )


@pytest.fixture
def backend() -> FakeRefundBackend:
    return FakeRefundBackend()


@pytest.fixture
def gateway(sample_config: AppConfig, backend: FakeRefundBackend) -> RefundGatewayClient:
    """Client passerelle branché sur la passerelle simulée."""
    client = RefundGatewayClient(sample_config.gateway, transport=backend.transport)
    yield client
    client.close()
