"""Tests pour engine/calculator.py — devis local et prorata de taxe."""

from __future__ import annotations

from decimal import Decimal

import pytest

from refund_desk.engine.calculator import quote, unit_tax
from refund_desk.models import (
    DataIntegrityError,
    InvalidSelectionError,
    LineItem,
    Order,
    RefundSelection,
    SelectedLineItem,
    ShippingLine,
    TaxLine,
)


def _tax(amount: str) -> TaxLine:
    return TaxLine(price=Decimal(amount), rate=0.1, title="GST")


def _make_line_item(**overrides: object) -> LineItem:
    """Helper pour construire un LineItem avec des valeurs par défaut."""
    defaults: dict[str, object] = {
        "id": "gid://shopify/LineItem/11",
        "title": "Ceramic Mug",
        "sku": "MUG-01",
        "unit_price": Decimal("25.00"),
        "quantity": 4,
        "previously_refunded_quantity": 0,
        "tax_lines": (_tax("10.00"),),
    }
    defaults.update(overrides)
    return LineItem(**defaults)  # type: ignore[arg-type]


def _make_shipping(**overrides: object) -> ShippingLine:
    defaults: dict[str, object] = {
        "title": "Standard",
        "original_amount": Decimal("20.00"),
        "tax_lines": (_tax("2.00"),),
        "max_refundable": Decimal("20.00"),
    }
    defaults.update(overrides)
    return ShippingLine(**defaults)  # type: ignore[arg-type]


def _make_order(**overrides: object) -> Order:
    """Helper pour construire un Order avec des valeurs par défaut."""
    defaults: dict[str, object] = {
        "id": "gid://shopify/Order/5001001",
        "name": "#1001",
        "currency": "AUD",
        "total_tax": Decimal("12.00"),
        "gateway": "manual",
        "transaction_id": "7001",
        "location_id": "70116966605",
        "line_items": (_make_line_item(),),
        "shipping": _make_shipping(),
    }
    defaults.update(overrides)
    return Order(**defaults)  # type: ignore[arg-type]


def _select(item: LineItem, quantity: int) -> SelectedLineItem:
    return SelectedLineItem(
        line_item_id=item.id, quantity=quantity, unit_price=item.unit_price, title=item.title
    )


class TestQuoteNominal:
    def test_end_to_end_scenario(self) -> None:
        """25.00 × 2, taxe 10.00/4 = 2.50 par unité → sous-total 50, taxe 5, total 55."""
        item = _make_line_item()
        order = _make_order(line_items=(item,))
        result = quote(order, RefundSelection(selected_line_items=[_select(item, 2)]))

        assert result.product_subtotal == Decimal("50.00")
        assert result.product_tax == Decimal("5.00")
        assert result.shipping_amount == Decimal("0")
        assert result.shipping_tax == Decimal("0")
        assert result.total_tax == Decimal("5.00")
        assert result.refund_total == Decimal("55.00")

    def test_tax_prorated_on_original_quantity(self) -> None:
        """2 restants + 1 déjà remboursé, taxe 9.00 → 3.00 par unité, 6.00 pour 2 unités."""
        item = _make_line_item(
            quantity=2,
            previously_refunded_quantity=1,
            unit_price=Decimal("12.00"),
            tax_lines=(_tax("9.00"),),
        )
        order = _make_order(line_items=(item,))

        assert unit_tax(item) == Decimal("3.00")
        result = quote(order, RefundSelection(selected_line_items=[_select(item, 2)]))
        assert result.product_tax == Decimal("6.00")

    def test_multiple_tax_lines_summed(self) -> None:
        item = _make_line_item(quantity=2, tax_lines=(_tax("3.00"), _tax("1.00")))
        assert unit_tax(item) == Decimal("2.00")

    def test_item_without_tax_lines_contributes_zero(self) -> None:
        item = _make_line_item(tax_lines=())
        order = _make_order(line_items=(item,))
        result = quote(order, RefundSelection(selected_line_items=[_select(item, 3)]))

        assert result.product_tax == Decimal("0")
        assert result.refund_total == Decimal("75.00")

    def test_zero_original_quantity_unit_tax_zero(self) -> None:
        item = _make_line_item(quantity=0, previously_refunded_quantity=0)
        assert unit_tax(item) == Decimal("0")

    def test_selection_unit_price_used(self) -> None:
        """Le prix unitaire de la sélection fait foi (prix remisé courant)."""
        item = _make_line_item()
        order = _make_order(line_items=(item,))
        selected = SelectedLineItem(line_item_id=item.id, quantity=1, unit_price=Decimal("19.99"))
        result = quote(order, RefundSelection(selected_line_items=[selected]))
        assert result.product_subtotal == Decimal("19.99")

    def test_numeric_line_item_id_accepted(self) -> None:
        item = _make_line_item()
        order = _make_order(line_items=(item,))
        selected = SelectedLineItem(line_item_id="11", quantity=1, unit_price=item.unit_price)
        assert quote(order, RefundSelection(selected_line_items=[selected])).product_subtotal == Decimal("25.00")

    def test_no_float_drift(self) -> None:
        """Trois unités à 0.10 : exactement 0.30, sans dérive binaire."""
        item = _make_line_item(unit_price=Decimal("0.10"), quantity=3, tax_lines=())
        order = _make_order(line_items=(item,))
        result = quote(order, RefundSelection(selected_line_items=[_select(item, 3)]))
        assert result.product_subtotal == Decimal("0.30")


class TestQuoteShipping:
    def test_shipping_prorated(self) -> None:
        """Expédition 20.00 taxe 2.00, remboursement de 10.00 → taxe 1.00."""
        order = _make_order()
        selection = RefundSelection(
            shipping_refund_requested=True, shipping_refund_amount=Decimal("10.00")
        )
        result = quote(order, selection)

        assert result.shipping_amount == Decimal("10.00")
        assert result.shipping_tax == Decimal("1.00")
        assert result.refund_total == Decimal("11.00")

    def test_full_shipping_refund_gets_full_tax(self) -> None:
        order = _make_order()
        selection = RefundSelection(
            shipping_refund_requested=True, shipping_refund_amount=Decimal("20.00")
        )
        assert quote(order, selection).shipping_tax == Decimal("2.00")

    def test_multiple_shipping_tax_lines_summed_before_scaling(self) -> None:
        order = _make_order(shipping=_make_shipping(tax_lines=(_tax("2.00"), _tax("1.00"))))
        selection = RefundSelection(
            shipping_refund_requested=True, shipping_refund_amount=Decimal("10.00")
        )
        assert quote(order, selection).shipping_tax == Decimal("1.50")

    def test_shipping_amount_ignored_when_not_requested(self) -> None:
        order = _make_order()
        selection = RefundSelection(
            shipping_refund_requested=False, shipping_refund_amount=Decimal("10.00")
        )
        result = quote(order, selection)
        assert result.shipping_amount == Decimal("0")
        assert result.refund_total == Decimal("0")

    def test_zero_original_shipping_has_no_tax(self) -> None:
        order = _make_order(
            shipping=_make_shipping(original_amount=Decimal("0"), max_refundable=Decimal("0"))
        )
        selection = RefundSelection(shipping_refund_requested=True, shipping_refund_amount=Decimal("0"))
        assert quote(order, selection).shipping_tax == Decimal("0")

    def test_shipping_only_total_equals_shipping_plus_tax(self) -> None:
        order = _make_order(shipping=_make_shipping(tax_lines=()))
        selection = RefundSelection(
            shipping_refund_requested=True, shipping_refund_amount=Decimal("7.50")
        )
        assert quote(order, selection).refund_total == Decimal("7.50")

    def test_shipping_above_max_refundable_rejected(self) -> None:
        order = _make_order(shipping=_make_shipping(max_refundable=Decimal("15.00")))
        selection = RefundSelection(
            shipping_refund_requested=True, shipping_refund_amount=Decimal("15.01")
        )
        with pytest.raises(InvalidSelectionError):
            quote(order, selection)

    def test_negative_shipping_rejected(self) -> None:
        selection = RefundSelection(
            shipping_refund_requested=True, shipping_refund_amount=Decimal("-1")
        )
        with pytest.raises(InvalidSelectionError):
            quote(_make_order(), selection)

    def test_shipping_requested_without_shipping_line(self) -> None:
        order = _make_order(shipping=None)
        selection = RefundSelection(
            shipping_refund_requested=True, shipping_refund_amount=Decimal("5.00")
        )
        with pytest.raises(DataIntegrityError):
            quote(order, selection)


class TestQuoteValidation:
    def test_max_remaining_quantity_valid(self) -> None:
        item = _make_line_item(quantity=4)
        order = _make_order(line_items=(item,))
        assert quote(order, RefundSelection(selected_line_items=[_select(item, 4)])).product_subtotal == Decimal("100.00")

    def test_quantity_above_remaining_rejected(self) -> None:
        item = _make_line_item(quantity=4)
        order = _make_order(line_items=(item,))
        with pytest.raises(InvalidSelectionError):
            quote(order, RefundSelection(selected_line_items=[_select(item, 5)]))

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_rejected(self, quantity: int) -> None:
        item = _make_line_item()
        order = _make_order(line_items=(item,))
        with pytest.raises(InvalidSelectionError):
            quote(order, RefundSelection(selected_line_items=[_select(item, quantity)]))

    def test_unknown_line_item_rejected(self) -> None:
        order = _make_order()
        selected = SelectedLineItem(line_item_id="gid://shopify/LineItem/999", quantity=1, unit_price=Decimal("1"))
        with pytest.raises(InvalidSelectionError, match="999"):
            quote(order, RefundSelection(selected_line_items=[selected]))

    def test_duplicate_line_item_rejected(self) -> None:
        item = _make_line_item()
        order = _make_order(line_items=(item,))
        with pytest.raises(InvalidSelectionError):
            quote(order, RefundSelection(selected_line_items=[_select(item, 1), _select(item, 1)]))

    def test_order_without_line_items_rejected(self) -> None:
        with pytest.raises(DataIntegrityError):
            quote(_make_order(line_items=()), RefundSelection())


class TestQuoteProperties:
    def test_empty_selection_totals_zero(self) -> None:
        result = quote(_make_order(), RefundSelection())
        assert result.refund_total == Decimal("0")
        assert result.total_tax == Decimal("0")

    def test_idempotent(self) -> None:
        item = _make_line_item()
        order = _make_order(line_items=(item,))
        selection = RefundSelection(
            selected_line_items=[_select(item, 3)],
            shipping_refund_requested=True,
            shipping_refund_amount=Decimal("12.34"),
        )
        assert quote(order, selection) == quote(order, selection)

    def test_monotonic_in_quantity(self) -> None:
        item = _make_line_item()
        order = _make_order(line_items=(item,))
        totals = [
            quote(order, RefundSelection(selected_line_items=[_select(item, q)])).refund_total
            for q in range(1, item.quantity + 1)
        ]
        assert totals == sorted(totals)
        assert len(set(totals)) == len(totals)

    def test_rounded_for_presentation(self) -> None:
        """Taxe 10.00 / 3 unités : pleine précision en interne, centime à l'affichage."""
        item = _make_line_item(quantity=3, tax_lines=(_tax("10.00"),))
        order = _make_order(line_items=(item,))
        result = quote(order, RefundSelection(selected_line_items=[_select(item, 1)]))

        assert result.product_tax != Decimal("3.33")
        assert result.rounded().product_tax == Decimal("3.33")
        assert result.rounded().refund_total == Decimal("28.33")
