"""Client HTTP de la passerelle de remboursement (calcul, validation, PayPal/Stripe, historique).

Aucun réessai automatique : toute erreur remonte en ``GatewayError`` avec le
message de la passerelle, l'utilisateur relance manuellement.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

import httpx

from refund_desk.config.loader import GatewayConfig, ProviderConfig
from refund_desk.engine.refund_request import to_payload
from refund_desk.models import (
    CommitResult,
    GatewayError,
    GatewayQuote,
    GatewayRefundResult,
    ParseError,
    RefundMode,
    RefundRecord,
    RefundRequest,
    strip_gid,
)
from refund_desk.money import format_money, to_decimal
from refund_desk.parsers.refunds import RefundHistoryParser

logger = logging.getLogger(__name__)


class RefundGatewayClient:
    """Client synchrone de la passerelle."""

    def __init__(self, config: GatewayConfig, transport: httpx.BaseTransport | None = None) -> None:
        self.config = config
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=httpx.Timeout(config.timeout),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    def __enter__(self) -> RefundGatewayClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    # --- Remboursement générique ---

    def calculate(self, request: RefundRequest) -> GatewayQuote:
        """Dry-run : la passerelle renvoie le montant autoritatif et la transaction parente."""
        if request.mode is not RefundMode.CALCULATE:
            raise ValueError(f"Requête en mode {request.mode.value}, 'calculate' attendu")
        body = self._post(self.config.endpoints["calculate"], to_payload(request))
        transaction_id, amount = self._quote_fields(body, "calcul")
        logger.info("Commande %s : devis passerelle %s (transaction %s)", request.order_id, amount, transaction_id)
        return GatewayQuote(transaction_id=transaction_id, amount=amount)

    def refund(self, request: RefundRequest) -> CommitResult:
        """Exécute le remboursement ; seule une réponse avec identifiant de transaction vaut succès."""
        if request.mode is not RefundMode.COMMIT:
            raise ValueError(f"Requête en mode {request.mode.value}, 'refund' attendu")
        body = self._post(self.config.endpoints["refund"], to_payload(request))
        transaction_id, amount = self._quote_fields(body, "remboursement")
        logger.info("Commande %s : remboursement %s exécuté (transaction %s)", request.order_id, amount, transaction_id)
        return CommitResult(transaction_id=transaction_id, amount=amount, note=request.note)

    # --- Remboursements spécifiques ---

    def provider_refund(self, provider: ProviderConfig, reference_id: str, amount: Decimal) -> GatewayRefundResult:
        """Remboursement PayPal / Stripe à partir de l'identifiant stocké dans les metafields.

        Raises:
            GatewayError: Réponse non-succès (``success`` faux) ou échec réseau.
        """
        payload = {provider.id_field: reference_id, "amount": format_money(amount)}
        body = self._post(provider.endpoint, payload)
        refund_id = body.get(provider.refund_id_field)
        if not body.get("success") or not refund_id:
            message = str(body.get("message") or body.get("error") or f"Remboursement {provider.label} refusé")
            logger.error("%s : échec du remboursement de %s — %s", provider.label, reference_id, message)
            raise GatewayError(message)
        logger.info("%s : remboursement %s pour %s", provider.label, refund_id, reference_id)
        return GatewayRefundResult(success=True, refund_id=str(refund_id), message=body.get("message"))

    # --- Historique ---

    def refund_history(self, order_id: str) -> list[RefundRecord]:
        """Remboursements antérieurs d'une commande."""
        path = self.config.endpoints["history"].format(order_id=strip_gid(order_id))
        body = self._request("GET", path)
        if body.get("success") is False:
            raise GatewayError(str(body.get("error") or body.get("message") or "Historique indisponible"))
        try:
            return RefundHistoryParser().parse(body)
        except ParseError as e:
            raise GatewayError(f"Historique illisible : {e}") from e

    # --- Interne ---

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", path, payload)

    def _request(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        try:
            resp = self._client.request(method, path, json=payload)
        except httpx.HTTPError as e:
            logger.error("Passerelle injoignable %s %s : %s", method, path, e)
            raise GatewayError(f"Passerelle injoignable : {e}") from e

        try:
            body = resp.json()
        except ValueError:
            body = None

        if not resp.is_success:
            message = body.get("error") if isinstance(body, dict) else None
            logger.error(
                "Erreur passerelle %s %s status=%d body=%s",
                method, path, resp.status_code, resp.text[:300],
            )
            raise GatewayError(str(message or f"HTTP {resp.status_code}"), status_code=resp.status_code)

        if not isinstance(body, dict):
            raise GatewayError(f"Réponse passerelle invalide ({method} {path})", status_code=resp.status_code)
        if body.get("error"):
            raise GatewayError(str(body["error"]), status_code=resp.status_code)
        return body

    @staticmethod
    def _quote_fields(body: dict[str, Any], context: str) -> tuple[str, Decimal]:
        transaction_id = body.get("transactionId")
        amount = body.get("amount")
        if transaction_id in (None, "") or amount in (None, ""):
            raise GatewayError(f"Réponse de {context} incomplète : transactionId et amount requis")
        try:
            return str(transaction_id), to_decimal(amount)
        except ValueError as e:
            raise GatewayError(f"Réponse de {context} : {e}") from e
