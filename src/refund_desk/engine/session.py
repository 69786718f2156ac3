"""Session de remboursement d'une commande : protocole calcul puis validation.

Cycle de vie ::

    BROWSING → SELECTING → CALCULATED → COMMITTING → COMMITTED
                   ↑            │             │
                   └────────────┘             └→ FAILED

Toute modification de la sélection efface le devis passerelle et ramène la
session en SELECTING. Chaque demande de calcul reçoit un numéro de séquence ;
une réponse dont le numéro n'est pas le dernier émis est ignorée.
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from decimal import Decimal

from refund_desk.config.loader import ShopConfig
from refund_desk.engine.calculator import quote
from refund_desk.engine.refund_request import build_request
from refund_desk.models import (
    CommitResult,
    GatewayQuote,
    GatewayRefundResult,
    InvalidSelectionError,
    MissingGatewayQuoteError,
    Order,
    RefundMode,
    RefundQuote,
    RefundRequest,
    RefundSelection,
    SessionStateError,
)
from refund_desk.money import ZERO

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    BROWSING = "browsing"
    SELECTING = "selecting"
    CALCULATED = "calculated"
    COMMITTING = "committing"
    COMMITTED = "committed"
    FAILED = "failed"


class RefundSession:
    """État d'une session de remboursement pour une commande."""

    def __init__(self, shop: ShopConfig, order: Order | None = None) -> None:
        self.shop = shop
        self.order: Order | None = None
        self.selection = RefundSelection(notify_customer=shop.notify_customer)
        self.state = SessionState.BROWSING
        self.gateway_quote: GatewayQuote | None = None
        self.result: CommitResult | None = None
        self.provider_refund: GatewayRefundResult | None = None
        self.error: str | None = None
        self._sequence = 0
        self._pending_sequence: int | None = None
        if order is not None:
            self.open(order)

    # --- Navigation ---

    def open(self, order: Order) -> None:
        """Ouvre une commande avec une sélection vierge."""
        self.order = order
        self._reset()

    def close(self) -> None:
        self.order = None
        self._reset()

    def _reset(self) -> None:
        self.selection = RefundSelection(notify_customer=self.shop.notify_customer)
        self.state = SessionState.BROWSING
        self.gateway_quote = None
        self.result = None
        self.provider_refund = None
        self.error = None
        self._pending_sequence = None

    # --- Sélection ---

    def set_quantity(self, line_item_id: str, quantity: int) -> None:
        """Sélectionne ``quantity`` unités d'un article (0 le désélectionne)."""
        order = self.require_order()
        item = order.line_item(line_item_id)
        if item is None:
            raise InvalidSelectionError(f"Article {line_item_id} absent de la commande {order.name}")
        if quantity < 0 or quantity > item.quantity:
            raise InvalidSelectionError(
                f"Quantité invalide pour {item.title} : {quantity} (entre 0 et {item.quantity})"
            )
        self._before_mutation()
        self.selection.set_quantity(item, quantity)
        self._invalidate()

    def request_shipping(self, amount: Decimal | None = None) -> None:
        """Demande le remboursement de l'expédition (par défaut : le maximum remboursable)."""
        order = self.require_order()
        self._before_mutation()
        if amount is None:
            amount = order.shipping.max_refundable if order.shipping else ZERO
        self.selection.shipping_refund_requested = True
        self.selection.shipping_refund_amount = amount
        self._invalidate()

    def cancel_shipping(self) -> None:
        self._before_mutation()
        self.selection.shipping_refund_requested = False
        self._invalidate()

    def set_note(self, note: str) -> None:
        self._before_mutation()
        self.selection.note = note
        self._invalidate()

    def set_notify(self, notify: bool) -> None:
        self._before_mutation()
        self.selection.notify_customer = notify
        self._invalidate()

    def quote(self) -> RefundQuote:
        """Devis local, recalculé à chaque appel."""
        return quote(self.require_order(), self.selection)

    # --- Calcul (dry-run passerelle) ---

    def begin_calculation(self) -> tuple[int, RefundRequest]:
        """Prépare une demande de calcul ; elle remplace toute demande antérieure."""
        order = self.require_order()
        if self.state in (SessionState.COMMITTING, SessionState.COMMITTED):
            raise SessionStateError(f"Calcul impossible dans l'état {self.state.value}")
        request = build_request(order, self.selection, RefundMode.CALCULATE, self.shop)
        self._sequence += 1
        self._pending_sequence = self._sequence
        self.gateway_quote = None
        self.state = SessionState.SELECTING
        logger.debug("Commande %s : calcul #%d émis", order.name, self._sequence)
        return self._sequence, request

    def receive_gateway_quote(self, sequence: int, gateway_quote: GatewayQuote) -> bool:
        """Enregistre le devis passerelle ; retourne False si la réponse est périmée."""
        if sequence != self._pending_sequence:
            logger.info("Réponse de calcul #%d périmée — ignorée", sequence)
            return False
        self._pending_sequence = None
        self.gateway_quote = gateway_quote
        self.state = SessionState.CALCULATED
        self.error = None
        return True

    def adopt_gateway_quote(self, gateway_quote: GatewayQuote) -> None:
        """Reprend un devis passerelle conservé par l'appelant (session reconstruite côté API)."""
        self._before_mutation()
        self._pending_sequence = None
        self.gateway_quote = gateway_quote
        self.state = SessionState.CALCULATED

    def calculation_failed(self, sequence: int, message: str) -> bool:
        if sequence != self._pending_sequence:
            logger.info("Échec du calcul #%d périmé — ignoré", sequence)
            return False
        self._pending_sequence = None
        self.state = SessionState.FAILED
        self.error = message
        return True

    # --- Validation (commit) ---

    @property
    def can_commit(self) -> bool:
        return (
            self.gateway_quote is not None
            and self._pending_sequence is None
            and self.state in (SessionState.CALCULATED, SessionState.FAILED)
        )

    def begin_commit(self, note: str | None = None) -> RefundRequest:
        """Construit la requête de validation à partir du devis passerelle courant.

        ``note`` remplace la note de la sélection pour cette requête seulement.
        """
        order = self.require_order()
        if self._pending_sequence is not None:
            raise MissingGatewayQuoteError("Un calcul est en cours : attendre le devis avant de valider")
        if not self.can_commit:
            raise MissingGatewayQuoteError(
                f"Aucun devis passerelle pour la commande {order.name} : calcul préalable requis"
            )
        selection = self.selection
        if note is not None:
            selection = dataclasses.replace(selection, note=note)
        request = build_request(order, selection, RefundMode.COMMIT, self.shop, self.gateway_quote)
        self.state = SessionState.COMMITTING
        return request

    def commit_succeeded(self, result: CommitResult) -> None:
        if self.state is not SessionState.COMMITTING:
            raise SessionStateError(f"Aucune validation en cours (état {self.state.value})")
        self.state = SessionState.COMMITTED
        self.result = result
        self.error = None

    def commit_failed(self, message: str) -> None:
        """Échec de la validation : la sélection et le devis sont conservés pour réessayer."""
        if self.state is not SessionState.COMMITTING:
            raise SessionStateError(f"Aucune validation en cours (état {self.state.value})")
        self.state = SessionState.FAILED
        self.error = message

    def adopt_provider_refund(self, refund_id: str) -> None:
        """Reprend un remboursement PayPal / Stripe déjà exécuté : il ne sera pas rejoué."""
        self._before_mutation()
        order = self.require_order()
        logger.info("Commande %s : remboursement prestataire %s repris", order.name, refund_id)
        self.provider_refund = GatewayRefundResult(success=True, refund_id=refund_id)

    def require_order(self) -> Order:
        if self.order is None:
            raise SessionStateError("Aucune commande ouverte")
        return self.order

    # --- Interne ---

    def _before_mutation(self) -> None:
        self.require_order()
        if self.state in (SessionState.COMMITTING, SessionState.COMMITTED):
            raise SessionStateError(f"Sélection verrouillée dans l'état {self.state.value}")

    def _invalidate(self) -> None:
        if self.gateway_quote is not None:
            logger.debug("Sélection modifiée — devis passerelle invalidé")
        self.gateway_quote = None
        self._pending_sequence = None
        self.state = SessionState.SELECTING
        self.error = None
