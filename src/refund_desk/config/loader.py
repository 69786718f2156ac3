"""Chargement et validation de la configuration YAML."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from refund_desk.models import ConfigError

logger = logging.getLogger(__name__)

REQUIRED_ENDPOINTS = ("calculate", "refund", "history")
SUPPORTED_CURRENCIES = {"AUD", "CAD", "EUR", "GBP", "NZD", "USD"}


@dataclass
class ShopConfig:
    """Paramètres de la boutique (non frozen — dataclass technique)."""

    currency: str = "AUD"
    default_note: str = "Refund via app"
    default_gateway: str = "manual"
    default_location_id: str | None = None
    notify_customer: bool = True


@dataclass
class OrdersConfig:
    """Listing des commandes : pagination et filtrage."""

    page_size: int = 25
    max_orders: int = 1000
    excluded_sources: list[str] = field(default_factory=lambda: ["web"])


@dataclass
class ProviderConfig:
    """Remboursement spécifique à un prestataire (PayPal, Stripe)."""

    endpoint: str
    metafield: str
    id_field: str
    refund_id_field: str
    label: str


@dataclass
class GatewayConfig:
    """Passerelle de remboursement externe."""

    base_url: str
    endpoints: dict[str, str]
    timeout: float = 30.0
    providers: dict[str, ProviderConfig] = field(default_factory=dict)


@dataclass
class AppConfig:
    """Configuration complète de l'application (non frozen — dataclass technique)."""

    shop: ShopConfig
    gateway: GatewayConfig
    orders: OrdersConfig = field(default_factory=OrdersConfig)


def _load_yaml(filepath: Path) -> dict[str, object]:
    """Charge un fichier YAML et retourne son contenu."""
    if not filepath.exists():
        raise ConfigError(f"Fichier de configuration manquant : {filepath}")
    try:
        with open(filepath, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"YAML malformé dans {filepath} : {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"Le fichier {filepath} doit contenir un mapping YAML (reçu : {type(data).__name__})")
    return data


def _require_key(data: dict[str, object], key: str, context: str) -> object:
    """Vérifie qu'une clé existe dans un dictionnaire."""
    if key not in data:
        raise ConfigError(f"Clé obligatoire '{key}' manquante dans {context}")
    return data[key]


def _positive_int(value: object, key: str, context: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"'{key}' doit être un entier strictement positif dans {context} (reçu : {value!r})")
    return value


def _validate_shop(data: dict[str, object]) -> tuple[ShopConfig, OrdersConfig]:
    """Valide et extrait les paramètres boutique et listing."""
    context = "shop.yaml"

    currency = str(_require_key(data, "currency", context)).upper()
    if currency not in SUPPORTED_CURRENCIES:
        raise ConfigError(
            f"Devise '{currency}' non supportée dans {context}. "
            f"Devises acceptées : {', '.join(sorted(SUPPORTED_CURRENCIES))}"
        )

    default_note = str(data.get("default_note", "Refund via app")).strip()
    if not default_note:
        raise ConfigError(f"'default_note' ne peut pas être vide dans {context}")

    notify = data.get("notify_customer", True)
    if not isinstance(notify, bool):
        raise ConfigError(f"'notify_customer' doit être un booléen dans {context}")

    location = data.get("default_location_id")

    shop = ShopConfig(
        currency=currency,
        default_note=default_note,
        default_gateway=str(data.get("default_gateway", "manual")),
        default_location_id=str(location) if location is not None else None,
        notify_customer=notify,
    )

    orders_raw = data.get("orders", {})
    if not isinstance(orders_raw, dict):
        raise ConfigError(f"'orders' doit être un mapping dans {context}")

    excluded = orders_raw.get("excluded_sources", ["web"])
    if not isinstance(excluded, list):
        raise ConfigError(f"'orders/excluded_sources' doit être une liste dans {context}")

    orders = OrdersConfig(
        page_size=_positive_int(orders_raw.get("page_size", 25), "orders/page_size", context),
        max_orders=_positive_int(orders_raw.get("max_orders", 1000), "orders/max_orders", context),
        excluded_sources=[str(s) for s in excluded],
    )
    return shop, orders


def _validate_gateway(data: dict[str, object]) -> GatewayConfig:
    """Valide et extrait la configuration de la passerelle."""
    context = "gateway.yaml"

    base_url = str(_require_key(data, "base_url", context)).strip()
    if not base_url.startswith(("http://", "https://")):
        raise ConfigError(f"'base_url' doit être une URL http(s) dans {context} (reçu : {base_url!r})")

    endpoints_raw = _require_key(data, "endpoints", context)
    if not isinstance(endpoints_raw, dict):
        raise ConfigError(f"'endpoints' doit être un mapping dans {context}")
    for name in REQUIRED_ENDPOINTS:
        path = endpoints_raw.get(name)
        if not path or not str(path).strip():
            raise ConfigError(f"Endpoint '{name}' manquant dans {context}")
    if "{order_id}" not in str(endpoints_raw["history"]):
        raise ConfigError(f"L'endpoint 'history' doit contenir '{{order_id}}' dans {context}")

    raw_timeout = data.get("timeout", 30)
    if isinstance(raw_timeout, bool) or not isinstance(raw_timeout, (int, float)) or raw_timeout <= 0:
        raise ConfigError(f"'timeout' doit être un nombre positif dans {context}")

    providers_raw = data.get("providers", {})
    if not isinstance(providers_raw, dict):
        raise ConfigError(f"'providers' doit être un mapping dans {context}")

    providers: dict[str, ProviderConfig] = {}
    for name, provider in providers_raw.items():
        name_str = str(name)
        if not isinstance(provider, dict):
            raise ConfigError(f"Prestataire '{name_str}' doit être un mapping dans {context}")
        for key in ("endpoint", "metafield", "id_field", "refund_id_field"):
            if key not in provider:
                raise ConfigError(f"Clé '{key}' manquante pour le prestataire '{name_str}' dans {context}")
        providers[name_str.lower()] = ProviderConfig(
            endpoint=str(provider["endpoint"]),
            metafield=str(provider["metafield"]),
            id_field=str(provider["id_field"]),
            refund_id_field=str(provider["refund_id_field"]),
            label=str(provider.get("label", name_str)),
        )

    return GatewayConfig(
        base_url=base_url.rstrip("/"),
        endpoints={str(k): str(v) for k, v in endpoints_raw.items()},
        timeout=float(raw_timeout),
        providers=providers,
    )


def load_config(config_dir: Path) -> AppConfig:
    """Charge et valide la configuration complète depuis un répertoire.

    Args:
        config_dir: Répertoire contenant ``shop.yaml`` et ``gateway.yaml``.

    Returns:
        AppConfig validée.

    Raises:
        ConfigError: Si un fichier est manquant, malformé, ou contient des valeurs invalides.
    """
    logger.info("Chargement de la configuration depuis %s", config_dir)

    shop_data = _load_yaml(config_dir / "shop.yaml")
    gateway_data = _load_yaml(config_dir / "gateway.yaml")

    shop, orders = _validate_shop(shop_data)
    gateway = _validate_gateway(gateway_data)

    config = AppConfig(shop=shop, gateway=gateway, orders=orders)

    logger.debug("Passerelle : %s (timeout %.1fs)", gateway.base_url, gateway.timeout)

    return config
