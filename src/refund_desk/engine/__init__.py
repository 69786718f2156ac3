"""Moteur de remboursement : devis, requêtes passerelle, session."""

from __future__ import annotations

from refund_desk.engine.calculator import quote, unit_tax, validate_selection
from refund_desk.engine.history import apply_refund_history
from refund_desk.engine.refund_request import build_request, to_payload
from refund_desk.engine.session import RefundSession, SessionState

__all__ = [
    "RefundSession",
    "SessionState",
    "apply_refund_history",
    "build_request",
    "quote",
    "to_payload",
    "unit_tax",
    "validate_selection",
]
