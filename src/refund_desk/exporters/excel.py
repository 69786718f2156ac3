"""Export Excel de l'historique des remboursements et résumé console d'un devis."""

from __future__ import annotations

from io import BytesIO
from pathlib import Path

import pandas as pd

from refund_desk.models import GatewayQuote, Order, RefundQuote, RefundRecord
from refund_desk.money import format_money

LINE_ITEMS_SHEET = "Articles remboursés"
SHIPPING_SHEET = "Expédition remboursée"

LINE_ITEMS_COLUMNS = [
    "order",
    "refund_id",
    "created_at",
    "line_item_id",
    "sku",
    "title",
    "quantity",
    "subtotal",
    "total_tax",
    "note",
]

SHIPPING_COLUMNS = [
    "order",
    "refund_id",
    "created_at",
    "title",
    "total",
    "tax",
]


def _created_at(record: RefundRecord) -> str:
    return record.created_at.isoformat() if record.created_at else ""


def _build_frames(order_name: str, records: list[RefundRecord]) -> tuple[pd.DataFrame, pd.DataFrame]:
    line_rows = [
        {
            "order": order_name,
            "refund_id": r.id,
            "created_at": _created_at(r),
            "line_item_id": line.line_item_id,
            "sku": line.sku,
            "title": line.title,
            "quantity": line.quantity,
            "subtotal": float(line.subtotal),
            "total_tax": float(line.total_tax),
            "note": r.note,
        }
        for r in records
        for line in r.line_items
    ]
    shipping_rows = [
        {
            "order": order_name,
            "refund_id": r.id,
            "created_at": _created_at(r),
            "title": ship.title,
            "total": float(ship.total),
            "tax": float(ship.tax),
        }
        for r in records
        for ship in r.shipping
    ]
    return (
        pd.DataFrame(line_rows, columns=LINE_ITEMS_COLUMNS),
        pd.DataFrame(shipping_rows, columns=SHIPPING_COLUMNS),
    )


def _write(target: Path | BytesIO, order_name: str, records: list[RefundRecord]) -> None:
    df_lines, df_shipping = _build_frames(order_name, records)
    with pd.ExcelWriter(target, engine="openpyxl") as writer:
        df_lines.to_excel(writer, sheet_name=LINE_ITEMS_SHEET, index=False)
        df_shipping.to_excel(writer, sheet_name=SHIPPING_SHEET, index=False)


def export_history(order_name: str, records: list[RefundRecord], output_path: Path) -> None:
    """Exporte l'historique des remboursements d'une commande dans un fichier Excel à 2 onglets."""
    _write(output_path, order_name, records)


def export_history_to_bytes(order_name: str, records: list[RefundRecord]) -> BytesIO:
    """Exporte l'historique en Excel dans un buffer mémoire (téléchargement API)."""
    buffer = BytesIO()
    _write(buffer, order_name, records)
    buffer.seek(0)
    return buffer


def print_quote(order: Order, quote: RefundQuote, gateway_quote: GatewayQuote | None = None) -> None:
    """Affiche le devis sur la console."""
    print(f"Commande {order.name} ({order.currency}) — passerelle {order.gateway}")
    rows = [
        ("Sous-total articles", quote.product_subtotal),
        ("Taxe articles", quote.product_tax),
        ("Expédition", quote.shipping_amount),
        ("Taxe expédition", quote.shipping_tax),
        ("Taxe totale", quote.total_tax),
        ("Total remboursé", quote.refund_total),
    ]
    for label, amount in rows:
        print(f"  {label:<22s}: {format_money(amount):>10s}")
    if gateway_quote is not None:
        print(
            f"  {'Devis passerelle':<22s}: {format_money(gateway_quote.amount):>10s}"
            f"  (transaction {gateway_quote.transaction_id})"
        )
