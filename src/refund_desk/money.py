"""Arithmétique monétaire en Decimal (jamais de float binaire pour les montants)."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: object) -> Decimal:
    """Convertit un montant (str, int, float, Decimal, None) en Decimal.

    Les floats passent par ``str()`` pour conserver la représentation courte
    (``0.1`` → ``Decimal("0.1")`` et non ``0.1000000000000000055…``).
    ``None`` et la chaîne vide valent zéro.

    Raises:
        ValueError: Si la valeur n'est pas un montant lisible.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Montant invalide : {value!r}")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        value = str(value)
    text = str(value).strip().replace(",", ".")
    if not text:
        return ZERO
    try:
        result = Decimal(text)
    except InvalidOperation as e:
        raise ValueError(f"Montant invalide : {value!r}") from e
    if not result.is_finite():
        raise ValueError(f"Montant invalide : {value!r}")
    return result


def quantize(amount: Decimal) -> Decimal:
    """Arrondit au centime (arrondi commercial)."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(amount: Decimal) -> str:
    """Sérialise un montant pour la passerelle ou l'affichage (ex: '55.00')."""
    return f"{quantize(amount):.2f}"
