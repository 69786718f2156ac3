"""Schémas Pydantic des requêtes de l'API."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, field_validator

from refund_desk.money import to_decimal


def _parse_amount(value: object, label: str) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError as e:
        raise ValueError(f"{label} : {e}") from e
    if amount < 0:
        raise ValueError(f"{label} négatif : {amount}")
    return amount


class SelectedItemSchema(BaseModel):
    """Article sélectionné : identifiant (GID ou numérique) et quantité."""

    line_item_id: str
    quantity: int

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Quantité invalide : {v} (minimum 1)")
        return v


class SelectionSchema(BaseModel):
    """Sélection de remboursement."""

    line_items: list[SelectedItemSchema] = []
    shipping: bool = False
    shipping_amount: Decimal | None = None
    note: str = ""
    notify_customer: bool = True

    @field_validator("shipping_amount", mode="before")
    @classmethod
    def validate_shipping_amount(cls, v: object) -> Decimal | None:
        if v is None:
            return None
        return _parse_amount(v, "Montant d'expédition")


class GatewayQuoteSchema(BaseModel):
    """Devis passerelle conservé par le client entre calculate et refund."""

    transaction_id: str
    amount: Decimal

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v: object) -> Decimal:
        return _parse_amount(v, "Montant du devis")


class RefundBody(BaseModel):
    """Corps commun de /api/quote, /api/calculate et /api/refund."""

    order: dict[str, Any]
    selection: SelectionSchema = SelectionSchema()
    with_history: bool = False
    gateway_quote: GatewayQuoteSchema | None = None
    provider_refund_id: str | None = None
