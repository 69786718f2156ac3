"""Application de l'historique des remboursements à un snapshot de commande."""

from __future__ import annotations

import dataclasses
import logging
from collections import Counter
from decimal import Decimal

from refund_desk.models import LineItem, Order, RefundRecord, strip_gid
from refund_desk.money import ZERO

logger = logging.getLogger(__name__)


def refunded_quantities(records: list[RefundRecord]) -> Counter[str]:
    """Quantités déjà remboursées par article (clé : identifiant numérique)."""
    totals: Counter[str] = Counter()
    for record in records:
        for line in record.line_items:
            totals[strip_gid(line.line_item_id)] += line.quantity
    return totals


def refunded_shipping(records: list[RefundRecord]) -> Decimal:
    """Montant d'expédition déjà remboursé (hors taxe)."""
    return sum((r.shipping_total for r in records), ZERO)


def apply_refund_history(order: Order, records: list[RefundRecord]) -> Order:
    """Retourne une commande dont les quantités et l'expédition tiennent compte des remboursements.

    Les quantités sont recalculées depuis la quantité commandée d'origine :
    appliquer deux fois le même historique donne le même résultat.
    """
    if not records:
        return order

    refunded = refunded_quantities(records)
    items: list[LineItem] = []
    for item in order.line_items:
        already = refunded.get(strip_gid(item.id), 0)
        if already > item.original_quantity:
            logger.warning(
                "Commande %s : %d unités remboursées pour %s (commandées : %d) — plafonné",
                order.name,
                already,
                item.title,
                item.original_quantity,
            )
            already = item.original_quantity
        items.append(
            dataclasses.replace(
                item,
                quantity=item.original_quantity - already,
                previously_refunded_quantity=already,
            )
        )

    shipping = order.shipping
    if shipping is not None:
        remaining = shipping.original_amount - refunded_shipping(records)
        if remaining < ZERO:
            logger.warning("Commande %s : expédition remboursée au-delà du montant d'origine", order.name)
            remaining = ZERO
        shipping = dataclasses.replace(shipping, max_refundable=remaining)

    logger.debug("Commande %s : %d remboursement(s) antérieur(s) appliqué(s)", order.name, len(records))
    return dataclasses.replace(order, line_items=tuple(items), shipping=shipping)
