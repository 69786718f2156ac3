"""Parsers des payloads Shopify et de l'historique des remboursements."""

from refund_desk.parsers.base import BaseParser
from refund_desk.parsers.refunds import RefundHistoryParser
from refund_desk.parsers.shopify import ShopifyOrderParser

__all__ = ["BaseParser", "RefundHistoryParser", "ShopifyOrderParser"]
