"""Parser des commandes Shopify (nœud GraphQL admin + transactions REST)."""

from __future__ import annotations

import logging
from typing import Any

from refund_desk.config.loader import AppConfig
from refund_desk.engine.history import apply_refund_history
from refund_desk.models import LineItem, Order, ParseError, RefundRecord, ShippingLine, TaxLine
from refund_desk.parsers.base import BaseParser

logger = logging.getLogger(__name__)

REQUIRED_ORDER_FIELDS = ["id", "name", "lineItems"]
REQUIRED_LINE_ITEM_FIELDS = ["id", "title", "quantity"]


class ShopifyOrderParser(BaseParser):
    """Construit un snapshot ``Order`` à partir d'un nœud de commande Shopify."""

    def parse(
        self,
        payload: dict[str, Any],
        config: AppConfig,
        transactions: list[dict[str, Any]] | None = None,
        refunds: list[RefundRecord] | None = None,
    ) -> Order:
        """Parse une commande.

        Args:
            payload: Nœud ``order`` tel que renvoyé par l'API GraphQL admin.
                Une clé ``transactions`` (liste REST) peut y être embarquée.
            config: Configuration (devise, passerelle et emplacement par défaut).
            transactions: Transactions REST de la commande ; la première
                fournit l'identifiant de transaction, la passerelle et l'emplacement.
            refunds: Historique des remboursements ; s'il est fourni, les
                quantités remboursables et l'expédition restante en sont déduites.

        Raises:
            ParseError: Champ obligatoire absent ou valeur illisible.
        """
        if not isinstance(payload, dict):
            raise ParseError(f"Commande attendue sous forme de mapping (reçu : {type(payload).__name__})")
        for key in REQUIRED_ORDER_FIELDS:
            self.require(payload, key, "commande")

        name = str(payload["name"])
        context = f"commande {name}"

        if transactions is None:
            transactions = payload.get("transactions")
        transaction_id, gateway, location_id = self._transaction_metadata(name, transactions, config)

        line_items = tuple(
            self._parse_line_item(node, context) for node in self.nodes(payload["lineItems"])
        )
        shipping_nodes = self.nodes(payload.get("shippingLines"))
        shipping = self._parse_shipping(shipping_nodes[0], context) if shipping_nodes else None

        metafields = {
            str(node["key"]): str(node.get("value", ""))
            for node in self.nodes(payload.get("metafields"))
            if "key" in node
        }

        order = Order(
            id=str(payload["id"]),
            name=name,
            currency=str(
                self.dig(payload, "totalPriceSet", "shopMoney", "currencyCode", default=config.shop.currency)
            ),
            total_tax=self.money(self.dig(payload, "totalTaxSet", "shopMoney", "amount"), f"{context}/totalTax"),
            gateway=gateway,
            transaction_id=transaction_id,
            location_id=location_id,
            line_items=line_items,
            shipping=shipping,
            email=str(payload.get("email") or ""),
            source_name=payload.get("sourceName"),
            created_at=self.timestamp(payload.get("createdAt")),
            financial_status=payload.get("displayFinancialStatus"),
            metafields=metafields,
        )

        if refunds:
            order = apply_refund_history(order, refunds)
        return order

    def parse_many(self, payloads: list[dict[str, Any]], config: AppConfig) -> list[Order]:
        """Parse une liste de commandes ; une commande illisible est ignorée avec un warning."""
        orders: list[Order] = []
        for payload in payloads:
            try:
                orders.append(self.parse(payload, config))
            except ParseError as e:
                logger.warning("Commande ignorée : %s", e)
        logger.info("Shopify : %d commandes parsées sur %d", len(orders), len(payloads))
        return orders

    def _parse_line_item(self, node: dict[str, Any], context: str) -> LineItem:
        for key in REQUIRED_LINE_ITEM_FIELDS:
            self.require(node, key, context)
        item_context = f"{context}/article {node['id']}"

        ordered = self.quantity(node["quantity"], item_context)
        if node.get("refundableQuantity") is not None:
            remaining = self.quantity(node["refundableQuantity"], item_context)
            if remaining > ordered:
                raise ParseError(f"{item_context} : quantité remboursable {remaining} > quantité commandée {ordered}")
        else:
            remaining = ordered

        return LineItem(
            id=str(node["id"]),
            title=str(node["title"]),
            sku=str(node.get("sku") or ""),
            unit_price=self.money(
                self.dig(node, "discountedUnitPriceSet", "shopMoney", "amount"), f"{item_context}/prix"
            ),
            quantity=remaining,
            previously_refunded_quantity=ordered - remaining,
            tax_lines=self._parse_tax_lines(node.get("taxLines"), item_context),
        )

    def _parse_shipping(self, node: dict[str, Any], context: str) -> ShippingLine:
        amount = self.money(
            self.dig(node, "originalPriceSet", "shopMoney", "amount"), f"{context}/expédition"
        )
        return ShippingLine(
            title=str(node.get("title") or "Shipping"),
            original_amount=amount,
            tax_lines=self._parse_tax_lines(node.get("taxLines"), f"{context}/expédition"),
            max_refundable=amount,
        )

    def _parse_tax_lines(self, raw: object, context: str) -> tuple[TaxLine, ...]:
        tax_lines: list[TaxLine] = []
        for node in self.nodes(raw):
            price = self.dig(node, "priceSet", "shopMoney", "amount", default=node.get("price"))
            rate = node.get("rate") or 0.0
            try:
                rate_float = float(rate)
            except (TypeError, ValueError) as e:
                raise ParseError(f"{context} : taux de taxe invalide {rate!r}") from e
            tax_lines.append(
                TaxLine(
                    price=self.money(price, f"{context}/taxe"),
                    rate=rate_float,
                    title=str(node.get("title") or ""),
                )
            )
        return tuple(tax_lines)

    @staticmethod
    def _transaction_metadata(
        name: str, transactions: object, config: AppConfig
    ) -> tuple[str | None, str, str | None]:
        """Identifiant de transaction, passerelle et emplacement depuis la première transaction.

        Un échec de lecture n'interrompt pas le listing : passerelle par défaut.
        """
        default = (None, config.shop.default_gateway, config.shop.default_location_id)
        if not transactions:
            logger.debug("Commande %s : aucune transaction — passerelle %s", name, config.shop.default_gateway)
            return default
        if not isinstance(transactions, list) or not isinstance(transactions[0], dict):
            logger.warning("Commande %s : transactions illisibles — passerelle %s", name, config.shop.default_gateway)
            return default

        tx = transactions[0]
        tx_id = tx.get("id")
        location = tx.get("location_id")
        return (
            str(tx_id) if tx_id is not None else None,
            str(tx.get("gateway") or config.shop.default_gateway),
            str(location) if location is not None else config.shop.default_location_id,
        )
