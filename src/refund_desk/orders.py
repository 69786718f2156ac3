"""Listing des commandes : exclusion par canal, recherche et pagination."""

from __future__ import annotations

import logging

from refund_desk.config.loader import OrdersConfig
from refund_desk.models import Order, OrderPage

logger = logging.getLogger(__name__)


def _normalize(text: str) -> str:
    return text.lower().replace("#", "").strip()


def matches(order: Order, search: str) -> bool:
    """Recherche insensible à la casse sur le numéro (sans '#') ou l'email."""
    needle = _normalize(search)
    if not needle:
        return True
    return needle in _normalize(order.name) or needle in order.email.lower()


def list_orders(
    orders: list[Order],
    config: OrdersConfig,
    search: str = "",
    page: int = 1,
) -> OrderPage:
    """Filtre et pagine les commandes.

    Les commandes dont le canal d'origine figure dans ``excluded_sources``
    sont écartées ; au plus ``max_orders`` commandes sont considérées.
    Une page hors bornes retourne une liste vide (le total reste exact).
    """
    eligible = [o for o in orders if o.source_name not in config.excluded_sources]
    if len(eligible) > config.max_orders:
        logger.warning("Listing tronqué à %d commandes (%d disponibles)", config.max_orders, len(eligible))
        eligible = eligible[: config.max_orders]

    filtered = [o for o in eligible if matches(o, search)]
    page = max(page, 1)
    start = (page - 1) * config.page_size
    return OrderPage(
        orders=filtered[start : start + config.page_size],
        total=len(filtered),
        page=page,
        page_size=config.page_size,
    )


def find_order(orders: list[Order], order_id: str) -> Order | None:
    """Retrouve une commande par GID, identifiant numérique ou numéro (#1001)."""
    for order in orders:
        if order_id in (order.id, order.numeric_id, order.name):
            return order
    return None
