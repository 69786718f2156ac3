"""Orchestration d'un remboursement : chargement, calcul passerelle, validation."""

from __future__ import annotations

import dataclasses
import logging
from typing import Any

from refund_desk.config.loader import AppConfig, ProviderConfig
from refund_desk.engine.history import apply_refund_history
from refund_desk.engine.session import RefundSession
from refund_desk.gateway.client import RefundGatewayClient
from refund_desk.models import (
    CommitResult,
    GatewayError,
    GatewayQuote,
    Order,
    SessionStateError,
)
from refund_desk.parsers.shopify import ShopifyOrderParser

logger = logging.getLogger(__name__)


class RefundService:
    """Orchestre le protocole calcul → validation contre la passerelle."""

    def __init__(self, config: AppConfig, gateway: RefundGatewayClient) -> None:
        self.config = config
        self.gateway = gateway

    def load_order(self, payload: dict[str, Any], with_history: bool = True) -> Order:
        """Parse une commande Shopify et, si demandé, y applique l'historique de la passerelle."""
        order = ShopifyOrderParser().parse(payload, self.config)
        if with_history:
            order = self.refresh(order)
        return order

    def refresh(self, order: Order) -> Order:
        """Recharge l'historique des remboursements (à appeler après une validation)."""
        records = self.gateway.refund_history(order.id)
        return apply_refund_history(order, records)

    def open_session(self, order: Order) -> RefundSession:
        return RefundSession(self.config.shop, order)

    def calculate(self, session: RefundSession) -> GatewayQuote:
        """Demande le devis autoritatif de la passerelle pour la sélection courante.

        Raises:
            InvalidSelectionError, DataIntegrityError: avant tout appel réseau.
            GatewayError: la session passe en FAILED, la sélection est conservée.
            SessionStateError: la sélection a changé pendant l'appel, le devis est périmé.
        """
        sequence, request = session.begin_calculation()
        try:
            gateway_quote = self.gateway.calculate(request)
        except GatewayError as e:
            session.calculation_failed(sequence, str(e))
            raise
        if not session.receive_gateway_quote(sequence, gateway_quote):
            logger.warning(
                "Commande %s : devis %s périmé, la sélection a changé pendant le calcul",
                session.require_order().name, gateway_quote.transaction_id,
            )
            raise SessionStateError("Devis passerelle périmé : recalcul nécessaire")
        return gateway_quote

    def commit(self, session: RefundSession) -> CommitResult:
        """Exécute le remboursement à partir du devis passerelle de la session.

        Pour les commandes PayPal / Stripe dont les metafields portent
        l'identifiant d'origine, le remboursement prestataire précède la
        validation générique et son identifiant est ajouté à la note.

        Raises:
            MissingGatewayQuoteError: aucun devis passerelle frais.
            GatewayError: la session passe en FAILED ; rien n'est marqué remboursé.
                ``provider_refund_id`` porte le remboursement prestataire déjà
                exécuté, à reprendre via ``adopt_provider_refund`` pour réessayer.
        """
        order = session.require_order()
        request = session.begin_commit()
        gateway_quote = session.gateway_quote
        if gateway_quote is None:
            raise SessionStateError(f"Devis passerelle perdu pendant la validation de {order.name}")

        try:
            provider = self._provider_for(order)
            if provider is not None:
                if session.provider_refund is None:
                    reference = order.metafields[provider.metafield]
                    session.provider_refund = self.gateway.provider_refund(
                        provider, reference, gateway_quote.amount
                    )
                else:
                    logger.warning(
                        "Commande %s : remboursement %s %s déjà effectué — non rejoué",
                        order.name, provider.label, session.provider_refund.refund_id,
                    )
                note = f"{request.note} | {provider.label} refund {session.provider_refund.refund_id}"
                request = dataclasses.replace(request, note=note)
            result = self.gateway.refund(request)
        except GatewayError as e:
            logger.error("Commande %s : échec du remboursement — %s", order.name, e)
            session.commit_failed(str(e))
            if session.provider_refund is not None:
                e.provider_refund_id = session.provider_refund.refund_id
            raise

        session.commit_succeeded(result)
        return result

    def _provider_for(self, order: Order) -> ProviderConfig | None:
        """Prestataire spécifique si la passerelle correspond et que l'identifiant est stocké."""
        gateway = order.gateway.lower()
        for key, provider in self.config.gateway.providers.items():
            if key in gateway:
                if provider.metafield in order.metafields:
                    return provider
                logger.info(
                    "Commande %s : metafield '%s' absent — remboursement générique",
                    order.name, provider.metafield,
                )
        return None
