"""Construction des requêtes de remboursement (calculate / refund) pour la passerelle."""

from __future__ import annotations

from refund_desk.config.loader import ShopConfig
from refund_desk.engine.calculator import validate_selection
from refund_desk.models import (
    GatewayQuote,
    MissingGatewayQuoteError,
    Order,
    RefundLineRequest,
    RefundMode,
    RefundRequest,
    RefundSelection,
    RefundTransaction,
    strip_gid,
)
from refund_desk.money import format_money


def build_request(
    order: Order,
    selection: RefundSelection,
    mode: RefundMode,
    shop: ShopConfig,
    gateway_quote: GatewayQuote | None = None,
) -> RefundRequest:
    """Construit la requête de remboursement.

    En mode ``CALCULATE`` la requête est un simple calcul (aucune transaction).
    En mode ``COMMIT`` une transaction unique est rattachée au devis renvoyé
    par la passerelle lors du calcul préalable.

    Raises:
        MissingGatewayQuoteError: Mode ``COMMIT`` sans devis passerelle.
        InvalidSelectionError: Sélection invalide (voir ``validate_selection``).
        DataIntegrityError: Commande incomplète.
    """
    validate_selection(order, selection)

    transactions: tuple[RefundTransaction, ...] | None = None
    if mode is RefundMode.COMMIT:
        if gateway_quote is None:
            raise MissingGatewayQuoteError(
                f"Aucun devis passerelle pour la commande {order.name} : calcul préalable requis"
            )
        transactions = (
            RefundTransaction(
                parent_transaction_id=gateway_quote.transaction_id,
                amount=gateway_quote.amount,
                gateway=order.gateway,
            ),
        )

    return RefundRequest(
        order_id=strip_gid(order.id),
        line_items=tuple(
            RefundLineRequest(line_item_id=strip_gid(s.line_item_id), quantity=s.quantity)
            for s in selection.selected_line_items
        ),
        shipping_amount=selection.shipping_refund_amount if selection.shipping_refund_requested else None,
        currency=shop.currency,
        notify=selection.notify_customer,
        note=selection.note.strip() or shop.default_note,
        mode=mode,
        transactions=transactions,
    )


def to_payload(request: RefundRequest) -> dict[str, object]:
    """Sérialise la requête au format JSON attendu par la passerelle."""
    refund: dict[str, object] = {
        "refund_line_items": [
            {"line_item_id": line.line_item_id, "quantity": line.quantity}
            for line in request.line_items
        ],
        "currency": request.currency,
        "notify": request.notify,
        "note": request.note,
    }
    if request.shipping_amount is not None:
        refund["shipping"] = {"amount": format_money(request.shipping_amount)}
    if request.transactions is not None:
        refund["transactions"] = [
            {
                "parent_id": t.parent_transaction_id,
                "amount": format_money(t.amount),
                "kind": t.kind,
                "gateway": t.gateway,
            }
            for t in request.transactions
        ]
    return {"orderId": request.order_id, "refund": refund}
