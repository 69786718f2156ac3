"""Classe abstraite de base pour les parsers de payloads JSON (Order Source)."""

from __future__ import annotations

import datetime
import logging
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any

from refund_desk.config.loader import AppConfig
from refund_desk.models import ParseError
from refund_desk.money import to_decimal

logger = logging.getLogger(__name__)


class BaseParser(ABC):
    """Classe abstraite définissant l'interface commune des parsers."""

    @abstractmethod
    def parse(self, payload: dict[str, Any], config: AppConfig) -> Any:
        """Parse un payload JSON et retourne le modèle métier correspondant."""

    @staticmethod
    def nodes(connection: object) -> list[dict[str, Any]]:
        """Aplatit une connexion GraphQL (``{"edges": [{"node": …}]}``) ou une liste simple."""
        if connection is None:
            return []
        if isinstance(connection, dict):
            edges = connection.get("edges", [])
            return [e["node"] for e in edges if isinstance(e, dict) and isinstance(e.get("node"), dict)]
        if isinstance(connection, list):
            return [n for n in connection if isinstance(n, dict)]
        raise ParseError(f"Connexion inattendue : {type(connection).__name__}")

    @staticmethod
    def dig(data: dict[str, Any], *path: str, default: object = None) -> Any:
        """Lit une valeur imbriquée (ex: ``dig(node, "totalTaxSet", "shopMoney", "amount")``)."""
        current: object = data
        for key in path:
            if not isinstance(current, dict) or key not in current:
                return default
            current = current[key]
        return current if current is not None else default

    @staticmethod
    def money(value: object, context: str) -> Decimal:
        """Convertit un montant ; lève ParseError si illisible."""
        try:
            return to_decimal(value)
        except ValueError as e:
            raise ParseError(f"{context} : {e}") from e

    @staticmethod
    def quantity(value: object, context: str) -> int:
        """Convertit une quantité entière positive ou nulle."""
        if isinstance(value, bool):
            raise ParseError(f"{context} : quantité invalide {value!r}")
        try:
            qty = int(str(value))
        except (TypeError, ValueError) as e:
            raise ParseError(f"{context} : quantité invalide {value!r}") from e
        if qty < 0:
            raise ParseError(f"{context} : quantité négative {qty}")
        return qty

    @staticmethod
    def timestamp(value: object) -> datetime.datetime | None:
        """Parse un horodatage ISO 8601 (suffixe ``Z`` accepté) ; None si absent ou illisible."""
        if not value or not isinstance(value, str):
            return None
        try:
            return datetime.datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning("Horodatage illisible ignoré : %r", value)
            return None

    @staticmethod
    def require(data: dict[str, Any], key: str, context: str) -> Any:
        """Vérifie qu'une clé obligatoire est présente et non nulle."""
        if data.get(key) is None:
            raise ParseError(f"Champ obligatoire '{key}' manquant dans {context}")
        return data[key]
