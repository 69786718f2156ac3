"""Point d'entrée CLI de refund-desk."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any

from refund_desk.config.loader import AppConfig, load_config
from refund_desk.engine.session import RefundSession
from refund_desk.exporters.excel import export_history, print_quote
from refund_desk.gateway.client import RefundGatewayClient
from refund_desk.models import (
    ConfigError,
    DataIntegrityError,
    GatewayError,
    InvalidSelectionError,
    MissingGatewayQuoteError,
    ParseError,
    SessionStateError,
)
from refund_desk.money import format_money, to_decimal
from refund_desk.service import RefundService

logger = logging.getLogger("refund_desk.main")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s — %(message)s"
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

EXIT_CONFIG = 2
EXIT_SELECTION = 3
EXIT_GATEWAY = 4


def _item_arg(value: str) -> tuple[str, int]:
    """Parse ``LINE_ITEM_ID=QTY``."""
    line_item_id, sep, qty = value.rpartition("=")
    if not sep or not line_item_id:
        raise argparse.ArgumentTypeError(f"Format attendu LINE_ITEM_ID=QTY (reçu : {value!r})")
    try:
        return line_item_id, int(qty)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"Quantité invalide : {qty!r}") from e


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config-dir",
        default="./config/",
        help="Répertoire de configuration YAML (défaut : ./config/)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=VALID_LOG_LEVELS,
        help="Niveau de log (défaut : INFO)",
    )


def _add_selection(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("order_file", help="Fichier JSON de la commande Shopify")
    parser.add_argument(
        "--item",
        action="append",
        default=[],
        type=_item_arg,
        metavar="LINE_ITEM_ID=QTY",
        help="Article à rembourser (répétable)",
    )
    parser.add_argument(
        "--shipping",
        nargs="?",
        const="max",
        default=None,
        metavar="AMOUNT",
        help="Rembourser l'expédition (sans montant : le maximum remboursable)",
    )
    parser.add_argument("--note", default="", help="Motif du remboursement")
    parser.add_argument("--no-notify", action="store_true", help="Ne pas notifier le client")
    parser.add_argument(
        "--no-history",
        action="store_true",
        help="Ne pas charger l'historique des remboursements depuis la passerelle",
    )


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse les arguments CLI."""
    parser = argparse.ArgumentParser(
        prog="refund-desk",
        description="Remboursements partiels ou complets de commandes Shopify",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    quote_parser = subparsers.add_parser("quote", help="Afficher le devis d'un remboursement")
    _add_selection(quote_parser)
    quote_parser.add_argument(
        "--calculate",
        action="store_true",
        help="Demander aussi le devis autoritatif de la passerelle",
    )
    _add_common(quote_parser)

    refund_parser = subparsers.add_parser("refund", help="Calculer puis exécuter un remboursement")
    _add_selection(refund_parser)
    _add_common(refund_parser)

    history_parser = subparsers.add_parser("history", help="Exporter l'historique des remboursements")
    history_parser.add_argument("order_id", help="Identifiant de la commande (GID ou numérique)")
    history_parser.add_argument("output_file", help="Fichier Excel de sortie")
    history_parser.add_argument("--order-name", default=None, help="Numéro affiché (défaut : identifiant)")
    _add_common(history_parser)

    return parser.parse_args(args)


def _read_order_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ParseError(f"Fichier commande introuvable : {path}")
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ParseError(f"JSON malformé dans {path} : {e}") from e
    if not isinstance(data, dict):
        raise ParseError(f"Le fichier {path} doit contenir un objet JSON")
    return data


def _build_session(service: RefundService, parsed: argparse.Namespace) -> RefundSession:
    payload = _read_order_file(Path(parsed.order_file))
    order = service.load_order(payload, with_history=not parsed.no_history)
    session = service.open_session(order)
    for line_item_id, quantity in parsed.item:
        session.set_quantity(line_item_id, quantity)
    if parsed.shipping is not None:
        session.request_shipping(None if parsed.shipping == "max" else _shipping_amount(parsed.shipping))
    if parsed.note:
        session.set_note(parsed.note)
    if parsed.no_notify:
        session.set_notify(False)
    return session


def _shipping_amount(raw: str) -> Decimal:
    try:
        return to_decimal(raw)
    except ValueError as e:
        raise InvalidSelectionError(f"Montant d'expédition invalide : {raw!r}") from e


def _run(parsed: argparse.Namespace, config: AppConfig) -> None:
    with RefundGatewayClient(config.gateway) as gateway:
        service = RefundService(config, gateway)

        if parsed.command == "history":
            records = gateway.refund_history(parsed.order_id)
            export_history(parsed.order_name or parsed.order_id, records, Path(parsed.output_file))
            print(f"{len(records)} remboursement(s) exporté(s) vers {parsed.output_file}")
            return

        session = _build_session(service, parsed)
        order = session.require_order()
        local_quote = session.quote()

        if parsed.command == "quote":
            gateway_quote = service.calculate(session) if parsed.calculate else None
            print_quote(order, local_quote, gateway_quote)
            return

        gateway_quote = service.calculate(session)
        print_quote(order, local_quote, gateway_quote)
        result = service.commit(session)
        print(f"Remboursement exécuté : transaction {result.transaction_id} ({format_money(result.amount)})")


def main(args: list[str] | None = None) -> None:
    """Point d'entrée principal."""
    parsed = parse_args(args)

    logging.basicConfig(
        level=getattr(logging, parsed.log_level),
        format=LOG_FORMAT,
    )

    config_dir = Path(parsed.config_dir)
    try:
        config = load_config(config_dir)
    except ConfigError as e:
        logger.error("Erreur de configuration : %s", e)
        sys.exit(EXIT_CONFIG)

    try:
        _run(parsed, config)
    except (InvalidSelectionError, DataIntegrityError, MissingGatewayQuoteError, SessionStateError) as e:
        print(f"ERREUR : {e}")
        sys.exit(EXIT_SELECTION)
    except GatewayError as e:
        print(f"ERREUR passerelle : {e}")
        sys.exit(EXIT_GATEWAY)
    except Exception:
        logger.exception("Erreur inattendue")
        sys.exit(1)


if __name__ == "__main__":
    main()
