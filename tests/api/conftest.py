"""Fixtures pour les tests d'intégration API."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

import pytest
from fastapi.testclient import TestClient

from refund_desk.gateway.client import RefundGatewayClient

if TYPE_CHECKING:
    from tests.conftest import FakeRefundBackend


@pytest.fixture
def client(backend: FakeRefundBackend) -> TestClient:
    """TestClient FastAPI avec configuration de test et passerelle simulée."""
    config_dir = str(Path(__file__).parent.parent / "fixtures" / "config")
    os.environ["CONFIG_DIR"] = config_dir

    from api.app.main import app

    with TestClient(app) as c:
        c.app.state.gateway.close()
        c.app.state.gateway = RefundGatewayClient(c.app.state.config.gateway, transport=backend.transport)
        yield c


@pytest.fixture
def orders_files(fixtures_dir: Path) -> list[tuple[str, tuple[str, bytes, str]]]:
    """Fichiers de commandes pour upload multipart."""
    orders = fixtures_dir / "orders"
    return [("files", ("orders.json", (orders / "orders_list.json").read_bytes(), "application/json"))]
