"""Parser de l'historique des remboursements renvoyé par la passerelle."""

from __future__ import annotations

import logging
from typing import Any

from refund_desk.config.loader import AppConfig
from refund_desk.models import ParseError, RefundedLineItem, RefundedShipping, RefundRecord
from refund_desk.parsers.base import BaseParser

logger = logging.getLogger(__name__)


class RefundHistoryParser(BaseParser):
    """Parse ``{"success": true, "refunds": [...]}`` en liste de ``RefundRecord``."""

    def parse(self, payload: dict[str, Any], config: AppConfig | None = None) -> list[RefundRecord]:
        if not isinstance(payload, dict):
            raise ParseError(f"Historique attendu sous forme de mapping (reçu : {type(payload).__name__})")
        refunds = payload.get("refunds") or []
        if not isinstance(refunds, list):
            raise ParseError("'refunds' doit être une liste")

        records = [self._parse_refund(raw, index) for index, raw in enumerate(refunds)]
        logger.debug("Historique : %d remboursement(s)", len(records))
        return records

    def _parse_refund(self, raw: object, index: int) -> RefundRecord:
        if not isinstance(raw, dict):
            raise ParseError(f"Remboursement #{index} illisible")
        refund_id = str(raw.get("id", index))
        context = f"remboursement {refund_id}"

        line_items: list[RefundedLineItem] = []
        for line in self.nodes(raw.get("refund_line_items")):
            self.require(line, "line_item_id", context)
            line_items.append(
                RefundedLineItem(
                    line_item_id=str(line["line_item_id"]),
                    quantity=self.quantity(line.get("quantity", 0), context),
                    sku=str(line.get("sku") or ""),
                    title=str(line.get("title") or ""),
                    subtotal=self.money(line.get("subtotal"), f"{context}/subtotal"),
                    total_tax=self.money(line.get("total_tax"), f"{context}/total_tax"),
                )
            )

        shipping = tuple(
            RefundedShipping(
                title=str(ship.get("title") or "Shipping"),
                total=self.money(ship.get("total"), f"{context}/expédition"),
                tax=self.money(ship.get("tax"), f"{context}/taxe expédition"),
            )
            for ship in self.nodes(raw.get("refund_shipping"))
        )

        return RefundRecord(
            id=refund_id,
            created_at=self.timestamp(raw.get("created_at")),
            note=str(raw.get("note") or ""),
            line_items=tuple(line_items),
            shipping=shipping,
        )
