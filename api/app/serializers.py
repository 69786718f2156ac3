"""Conversion des dataclasses métier vers les structures JSON de l'API."""

from __future__ import annotations

from refund_desk.engine.calculator import unit_tax
from refund_desk.models import CommitResult, GatewayQuote, Order, OrderPage, RefundQuote, RefundRecord
from refund_desk.money import format_money


def serialize_quote(quote: RefundQuote) -> dict[str, str]:
    """Sérialise un RefundQuote (montants arrondis au centime)."""
    return {
        "product_subtotal": format_money(quote.product_subtotal),
        "product_tax": format_money(quote.product_tax),
        "shipping_amount": format_money(quote.shipping_amount),
        "shipping_tax": format_money(quote.shipping_tax),
        "total_tax": format_money(quote.total_tax),
        "refund_total": format_money(quote.refund_total),
    }


def serialize_gateway_quote(gateway_quote: GatewayQuote) -> dict[str, str]:
    return {
        "transactionId": gateway_quote.transaction_id,
        "amount": format_money(gateway_quote.amount),
    }


def serialize_commit(result: CommitResult) -> dict[str, str]:
    return {
        "transactionId": result.transaction_id,
        "amount": format_money(result.amount),
        "note": result.note,
    }


def serialize_order_summary(order: Order) -> dict[str, object]:
    """Ligne de listing d'une commande."""
    return {
        "id": order.id,
        "order_id": order.numeric_id,
        "name": order.name,
        "email": order.email,
        "created_at": order.created_at.isoformat() if order.created_at else None,
        "financial_status": order.financial_status,
        "currency": order.currency,
        "gateway": order.gateway,
        "line_items": len(order.line_items),
    }


def serialize_order(order: Order) -> dict[str, object]:
    """Détail d'une commande avec quantités remboursables et taxe unitaire."""
    result = serialize_order_summary(order)
    result["total_tax"] = format_money(order.total_tax)
    result["transaction_id"] = order.transaction_id
    result["line_items"] = [
        {
            "id": item.id,
            "title": item.title,
            "sku": item.sku,
            "unit_price": format_money(item.unit_price),
            "quantity": item.quantity,
            "previously_refunded_quantity": item.previously_refunded_quantity,
            "unit_tax": format_money(unit_tax(item)),
        }
        for item in order.line_items
    ]
    result["shipping"] = (
        {
            "title": order.shipping.title,
            "original_amount": format_money(order.shipping.original_amount),
            "max_refundable": format_money(order.shipping.max_refundable),
        }
        if order.shipping
        else None
    )
    return result


def serialize_page(page: OrderPage) -> dict[str, object]:
    return {
        "orders": [serialize_order_summary(o) for o in page.orders],
        "total": page.total,
        "page": page.page,
        "total_pages": page.total_pages,
    }


def serialize_record(record: RefundRecord) -> dict[str, object]:
    """Sérialise un remboursement antérieur (format de l'historique passerelle)."""
    return {
        "id": record.id,
        "created_at": record.created_at.isoformat() if record.created_at else None,
        "note": record.note,
        "refund_line_items": [
            {
                "line_item_id": line.line_item_id,
                "quantity": line.quantity,
                "sku": line.sku,
                "title": line.title,
                "subtotal": format_money(line.subtotal),
                "total_tax": format_money(line.total_tax),
            }
            for line in record.line_items
        ],
        "refund_shipping": [
            {"title": s.title, "total": format_money(s.total), "tax": format_money(s.tax)}
            for s in record.shipping
        ],
    }
