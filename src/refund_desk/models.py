"""Modèles de données métier et hiérarchie d'exceptions."""

from __future__ import annotations

import datetime
import enum
from dataclasses import dataclass, field
from decimal import Decimal

from refund_desk.money import quantize


# --- Exceptions métier ---


class RefundDeskError(Exception):
    """Erreur de base pour l'application refund-desk."""


class ConfigError(RefundDeskError):
    """YAML malformé, clé manquante, valeur invalide."""


class DataIntegrityError(RefundDeskError):
    """Commande incomplète : champ imbriqué obligatoire absent (ex. pas de ligne d'expédition)."""


class ParseError(DataIntegrityError):
    """Payload Shopify ou historique de remboursements illisible."""


class InvalidSelectionError(RefundDeskError):
    """Quantité hors bornes, article inconnu ou montant d'expédition invalide."""


class MissingGatewayQuoteError(RefundDeskError):
    """Validation demandée sans devis passerelle frais (calculate préalable)."""


class SessionStateError(RefundDeskError):
    """Transition interdite dans l'état courant de la session de remboursement."""


class GatewayError(RefundDeskError):
    """Réponse non-succès ou échec réseau de la passerelle de remboursement."""

    def __init__(
        self, message: str, status_code: int | None = None, provider_refund_id: str | None = None
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        # Remboursement PayPal / Stripe déjà exécuté avant l'échec, à ne pas rejouer
        self.provider_refund_id = provider_refund_id


# --- Snapshot de commande (frozen) ---


@dataclass(frozen=True)
class TaxLine:
    """Ligne de taxe. ``price`` couvre la quantité d'origine complète de la ligne parente."""

    price: Decimal
    rate: float
    title: str


@dataclass(frozen=True)
class LineItem:
    """Article d'une commande.

    ``quantity`` est la quantité encore remboursable (quantité commandée moins
    quantité déjà remboursée).
    """

    id: str
    title: str
    sku: str
    unit_price: Decimal
    quantity: int
    previously_refunded_quantity: int
    tax_lines: tuple[TaxLine, ...] = ()

    @property
    def original_quantity(self) -> int:
        return self.quantity + self.previously_refunded_quantity


@dataclass(frozen=True)
class ShippingLine:
    """Frais d'expédition de la commande, remboursables séparément."""

    title: str
    original_amount: Decimal
    tax_lines: tuple[TaxLine, ...]
    max_refundable: Decimal


@dataclass(frozen=True)
class Order:
    """Snapshot en lecture seule d'une commande Shopify."""

    id: str
    name: str
    currency: str
    total_tax: Decimal
    gateway: str
    transaction_id: str | None
    location_id: str | None
    line_items: tuple[LineItem, ...]
    shipping: ShippingLine | None
    email: str = ""
    source_name: str | None = None
    created_at: datetime.datetime | None = None
    financial_status: str | None = None
    metafields: dict[str, str] = field(default_factory=dict)

    @property
    def numeric_id(self) -> str:
        return strip_gid(self.id)

    def line_item(self, line_item_id: str) -> LineItem | None:
        """Retrouve un article par identifiant (GID complet ou suffixe numérique)."""
        wanted = strip_gid(line_item_id)
        for item in self.line_items:
            if item.id == line_item_id or strip_gid(item.id) == wanted:
                return item
        return None


def strip_gid(value: str) -> str:
    """Réduit un GID Shopify à son suffixe numérique (ex: 'gid://shopify/Order/42' → '42')."""
    return str(value).rstrip("/").split("/")[-1]


# --- Sélection (mutable, construite par l'appelant) ---


@dataclass(frozen=True)
class SelectedLineItem:
    """Article sélectionné pour remboursement, au prix unitaire remisé courant."""

    line_item_id: str
    quantity: int
    unit_price: Decimal
    title: str = ""


@dataclass
class RefundSelection:
    """Sélection de remboursement (non frozen — modifiée au fil de l'interaction)."""

    selected_line_items: list[SelectedLineItem] = field(default_factory=list)
    shipping_refund_requested: bool = False
    shipping_refund_amount: Decimal = Decimal("0")
    note: str = ""
    notify_customer: bool = True

    def set_quantity(self, item: LineItem, quantity: int) -> None:
        """Remplace la quantité sélectionnée pour un article ; 0 retire l'article."""
        self.selected_line_items = [
            s for s in self.selected_line_items if s.line_item_id != item.id
        ]
        if quantity > 0:
            self.selected_line_items.append(
                SelectedLineItem(
                    line_item_id=item.id,
                    quantity=quantity,
                    unit_price=item.unit_price,
                    title=item.title,
                )
            )

    @property
    def is_empty(self) -> bool:
        return not self.selected_line_items and not self.shipping_refund_requested


# --- Résultats ---


@dataclass(frozen=True)
class RefundQuote:
    """Estimation locale d'un remboursement (pleine précision)."""

    product_subtotal: Decimal
    product_tax: Decimal
    shipping_amount: Decimal
    shipping_tax: Decimal
    total_tax: Decimal
    refund_total: Decimal

    def rounded(self) -> RefundQuote:
        """Retourne une copie arrondie au centime, pour affichage."""
        return RefundQuote(
            product_subtotal=quantize(self.product_subtotal),
            product_tax=quantize(self.product_tax),
            shipping_amount=quantize(self.shipping_amount),
            shipping_tax=quantize(self.shipping_tax),
            total_tax=quantize(self.total_tax),
            refund_total=quantize(self.refund_total),
        )


@dataclass(frozen=True)
class GatewayQuote:
    """Devis autoritatif renvoyé par la passerelle en mode calculate."""

    transaction_id: str
    amount: Decimal


class RefundMode(str, enum.Enum):
    """Mode d'appel de la passerelle."""

    CALCULATE = "calculate"
    COMMIT = "refund"


@dataclass(frozen=True)
class RefundTransaction:
    """Transaction de remboursement rattachée à la transaction d'origine."""

    parent_transaction_id: str
    amount: Decimal
    gateway: str
    kind: str = "refund"


@dataclass(frozen=True)
class RefundLineRequest:
    """Ligne de remboursement normalisée (identifiant numérique)."""

    line_item_id: str
    quantity: int


@dataclass(frozen=True)
class RefundRequest:
    """Payload final envoyé à la passerelle."""

    order_id: str
    line_items: tuple[RefundLineRequest, ...]
    shipping_amount: Decimal | None
    currency: str
    notify: bool
    note: str
    mode: RefundMode
    transactions: tuple[RefundTransaction, ...] | None = None


@dataclass(frozen=True)
class GatewayRefundResult:
    """Résultat d'un remboursement PayPal ou Stripe."""

    success: bool
    refund_id: str | None
    message: str | None = None


@dataclass(frozen=True)
class CommitResult:
    """Remboursement exécuté : identifiant de transaction renvoyé à l'interface."""

    transaction_id: str
    amount: Decimal
    note: str


# --- Historique des remboursements ---


@dataclass(frozen=True)
class RefundedLineItem:
    """Article remboursé lors d'un remboursement antérieur."""

    line_item_id: str
    quantity: int
    sku: str
    title: str
    subtotal: Decimal
    total_tax: Decimal


@dataclass(frozen=True)
class RefundedShipping:
    """Expédition remboursée lors d'un remboursement antérieur."""

    title: str
    total: Decimal
    tax: Decimal


@dataclass(frozen=True)
class RefundRecord:
    """Remboursement antérieur d'une commande."""

    id: str
    created_at: datetime.datetime | None
    note: str
    line_items: tuple[RefundedLineItem, ...]
    shipping: tuple[RefundedShipping, ...]

    @property
    def shipping_total(self) -> Decimal:
        return sum((s.total for s in self.shipping), Decimal("0"))


@dataclass(frozen=True)
class OrderPage:
    """Page de commandes filtrées."""

    orders: list[Order]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        return -(-self.total // self.page_size) if self.page_size else 0
