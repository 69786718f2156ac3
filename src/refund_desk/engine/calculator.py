"""Calcul du devis de remboursement : sous-total, taxe proratisée, expédition."""

from __future__ import annotations

from decimal import Decimal

from refund_desk.models import (
    DataIntegrityError,
    InvalidSelectionError,
    LineItem,
    Order,
    RefundQuote,
    RefundSelection,
    SelectedLineItem,
)
from refund_desk.money import ZERO


def quote(order: Order, selection: RefundSelection) -> RefundQuote:
    """Calcule le devis local d'un remboursement.

    Fonction pure : aucun effet de bord, appelable à chaque changement de
    sélection. Le devis de la passerelle reste la source de vérité pour le
    montant final.

    Raises:
        DataIntegrityError: Commande sans article, ou expédition demandée
            sur une commande sans ligne d'expédition.
        InvalidSelectionError: Article inconnu, quantité hors de
            ``[1, quantité remboursable]`` ou montant d'expédition invalide.
    """
    pairs = validate_selection(order, selection)

    product_subtotal = sum(
        (selected.unit_price * selected.quantity for selected, _ in pairs), ZERO
    )
    product_tax = sum(
        (unit_tax(item) * selected.quantity for selected, item in pairs), ZERO
    )

    shipping_amount = _shipping_amount(selection)
    shipping_tax = _shipping_tax(order, shipping_amount)

    total_tax = product_tax + shipping_tax
    return RefundQuote(
        product_subtotal=product_subtotal,
        product_tax=product_tax,
        shipping_amount=shipping_amount,
        shipping_tax=shipping_tax,
        total_tax=total_tax,
        refund_total=product_subtotal + total_tax + shipping_amount,
    )


def unit_tax(item: LineItem) -> Decimal:
    """Taxe unitaire : taxe totale de la ligne ÷ quantité d'origine (0 si quantité nulle)."""
    if not item.tax_lines:
        return ZERO
    original_quantity = item.original_quantity
    if original_quantity <= 0:
        return ZERO
    total_item_tax = sum((t.price for t in item.tax_lines), ZERO)
    return total_item_tax / original_quantity


def validate_selection(
    order: Order, selection: RefundSelection
) -> list[tuple[SelectedLineItem, LineItem]]:
    """Valide la sélection contre la commande et retourne les paires (sélection, article)."""
    if not order.line_items:
        raise DataIntegrityError(f"Commande {order.name} sans article")

    pairs: list[tuple[SelectedLineItem, LineItem]] = []
    seen: set[str] = set()
    for selected in selection.selected_line_items:
        item = order.line_item(selected.line_item_id)
        if item is None:
            raise InvalidSelectionError(
                f"Article {selected.line_item_id} absent de la commande {order.name}"
            )
        if item.id in seen:
            raise InvalidSelectionError(f"Article {item.id} sélectionné plusieurs fois")
        seen.add(item.id)
        if selected.quantity <= 0:
            raise InvalidSelectionError(
                f"Quantité invalide pour {item.title} : {selected.quantity} (minimum 1)"
            )
        if selected.quantity > item.quantity:
            raise InvalidSelectionError(
                f"Quantité invalide pour {item.title} : {selected.quantity} "
                f"(maximum remboursable {item.quantity})"
            )
        pairs.append((selected, item))

    if selection.shipping_refund_requested:
        if order.shipping is None:
            raise DataIntegrityError(
                f"Remboursement d'expédition demandé mais commande {order.name} sans ligne d'expédition"
            )
        amount = selection.shipping_refund_amount
        if amount < ZERO:
            raise InvalidSelectionError(f"Montant d'expédition négatif : {amount}")
        if amount > order.shipping.max_refundable:
            raise InvalidSelectionError(
                f"Montant d'expédition {amount} supérieur au maximum remboursable "
                f"{order.shipping.max_refundable}"
            )

    return pairs


def _shipping_amount(selection: RefundSelection) -> Decimal:
    if not selection.shipping_refund_requested:
        return ZERO
    return selection.shipping_refund_amount


def _shipping_tax(order: Order, shipping_amount: Decimal) -> Decimal:
    """Taxe d'expédition proportionnelle à la fraction remboursée.

    Les lignes de taxe multiples sont additionnées avant application du ratio.
    """
    shipping = order.shipping
    if shipping is None or shipping_amount == ZERO or shipping.original_amount <= ZERO:
        return ZERO
    shipping_tax_total = sum((t.price for t in shipping.tax_lines), ZERO)
    return shipping_tax_total * (shipping_amount / shipping.original_amount)
