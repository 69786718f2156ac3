"""Endpoints de l'API : /api/orders, /api/quote, /api/calculate, /api/refund, /api/refunds, /api/health."""

from __future__ import annotations

import datetime
import json
import logging
from typing import Any, NoReturn

from fastapi import APIRouter, Form, HTTPException, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse

from refund_desk.config.loader import AppConfig
from refund_desk.engine.session import RefundSession
from refund_desk.exporters.excel import export_history_to_bytes
from refund_desk.gateway.client import RefundGatewayClient
from refund_desk.models import (
    ConfigError,
    DataIntegrityError,
    GatewayError,
    GatewayQuote,
    InvalidSelectionError,
    MissingGatewayQuoteError,
    RefundDeskError,
    SessionStateError,
)
from refund_desk.orders import list_orders
from refund_desk.parsers.shopify import ShopifyOrderParser
from refund_desk.service import RefundService

from .schemas import RefundBody
from .serializers import (
    serialize_commit,
    serialize_gateway_quote,
    serialize_order,
    serialize_page,
    serialize_quote,
    serialize_record,
)

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10 MB
MAX_FILES = 20


def _raise_http(error: RefundDeskError) -> NoReturn:
    """Traduit une erreur métier en réponse HTTP."""
    if isinstance(error, (InvalidSelectionError, DataIntegrityError)):
        raise HTTPException(status_code=422, detail=str(error))
    if isinstance(error, (MissingGatewayQuoteError, SessionStateError)):
        raise HTTPException(status_code=409, detail=str(error))
    if isinstance(error, GatewayError):
        raise HTTPException(status_code=502, detail=str(error))
    if isinstance(error, ConfigError):
        logger.error("Erreur de configuration : %s", error)
        raise HTTPException(status_code=500, detail="Erreur de configuration interne")
    raise HTTPException(status_code=500, detail="Erreur interne")


def _service(request: Request) -> RefundService:
    config: AppConfig = request.app.state.config
    gateway: RefundGatewayClient = request.app.state.gateway
    return RefundService(config, gateway)


def _session(service: RefundService, body: RefundBody) -> RefundSession:
    """Reconstruit la session de remboursement décrite par le corps de requête."""
    order = service.load_order(body.order, with_history=body.with_history)
    session = service.open_session(order)
    selection = body.selection
    for item in selection.line_items:
        session.set_quantity(item.line_item_id, item.quantity)
    if selection.shipping:
        session.request_shipping(selection.shipping_amount)
    if selection.note:
        session.set_note(selection.note)
    if not selection.notify_customer:
        session.set_notify(False)
    return session


async def _validate_and_read_files(files: list[UploadFile]) -> list[dict[str, Any]]:
    """Valide les uploads JSON et retourne la liste des nœuds de commande."""
    if len(files) > MAX_FILES:
        raise HTTPException(
            status_code=422,
            detail=f"Trop de fichiers : {len(files)} (maximum {MAX_FILES}).",
        )

    payloads: list[dict[str, Any]] = []
    for f in files:
        filename = f.filename or "unknown"
        if not filename.lower().endswith(".json"):
            raise HTTPException(
                status_code=422,
                detail=f"Extension invalide pour '{filename}' : seuls les fichiers .json sont acceptés.",
            )
        content = await f.read()
        if len(content) > MAX_FILE_SIZE:
            raise HTTPException(
                status_code=413,
                detail=f"Fichier '{filename}' trop volumineux : {len(content)} octets (maximum {MAX_FILE_SIZE}).",
            )
        try:
            data = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise HTTPException(status_code=422, detail=f"JSON invalide dans '{filename}' : {e}")
        if isinstance(data, dict):
            data = data.get("orders", [data])
        if not isinstance(data, list):
            raise HTTPException(status_code=422, detail=f"'{filename}' doit contenir une liste de commandes.")
        payloads.extend(d for d in data if isinstance(d, dict))

    return payloads


@router.post("/api/orders")
async def orders(
    request: Request,
    files: list[UploadFile],
    search: str = Form(""),
    page: int = Form(1),
) -> JSONResponse:
    """Upload JSON de commandes → page filtrée (recherche sur numéro ou email)."""
    payloads = await _validate_and_read_files(files)
    config: AppConfig = request.app.state.config
    parsed = ShopifyOrderParser().parse_many(payloads, config)
    return JSONResponse(content=serialize_page(list_orders(parsed, config.orders, search, page)))


@router.post("/api/order")
def order_detail(request: Request, body: RefundBody) -> JSONResponse:
    """Détail d'une commande : quantités remboursables, taxe unitaire, expédition restante."""
    service = _service(request)
    try:
        order = service.load_order(body.order, with_history=body.with_history)
    except RefundDeskError as e:
        _raise_http(e)
    return JSONResponse(content=serialize_order(order))


@router.post("/api/quote")
def quote(request: Request, body: RefundBody) -> JSONResponse:
    """Devis local (aucun appel passerelle sauf historique demandé)."""
    service = _service(request)
    try:
        session = _session(service, body)
        local_quote = session.quote()
    except RefundDeskError as e:
        _raise_http(e)
    return JSONResponse(content=serialize_quote(local_quote))


@router.post("/api/calculate")
def calculate(request: Request, body: RefundBody) -> JSONResponse:
    """Dry-run passerelle : devis autoritatif à conserver pour /api/refund."""
    service = _service(request)
    try:
        session = _session(service, body)
        local_quote = session.quote()
        gateway_quote = service.calculate(session)
    except RefundDeskError as e:
        _raise_http(e)
    return JSONResponse(content={
        **serialize_gateway_quote(gateway_quote),
        "quote": serialize_quote(local_quote),
    })


@router.post("/api/refund")
def refund(request: Request, body: RefundBody) -> JSONResponse:
    """Exécute le remboursement à partir du devis obtenu par /api/calculate.

    Si le remboursement PayPal / Stripe a réussi mais pas la validation
    générique, la réponse 502 porte ``provider_refund_id`` : le renvoyer
    dans le corps pour réessayer sans rembourser le prestataire deux fois.
    """
    service = _service(request)
    try:
        session = _session(service, body)
        if body.gateway_quote is not None:
            session.adopt_gateway_quote(
                GatewayQuote(
                    transaction_id=body.gateway_quote.transaction_id,
                    amount=body.gateway_quote.amount,
                )
            )
        if body.provider_refund_id:
            session.adopt_provider_refund(body.provider_refund_id)
        result = service.commit(session)
    except GatewayError as e:
        if e.provider_refund_id is None:
            _raise_http(e)
        return JSONResponse(
            status_code=502,
            content={"detail": str(e), "provider_refund_id": e.provider_refund_id},
        )
    except RefundDeskError as e:
        _raise_http(e)
    return JSONResponse(content=serialize_commit(result))


@router.get("/api/refunds/{order_id}")
def refunds(request: Request, order_id: str) -> JSONResponse:
    """Historique des remboursements d'une commande."""
    gateway: RefundGatewayClient = request.app.state.gateway
    try:
        records = gateway.refund_history(order_id)
    except RefundDeskError as e:
        _raise_http(e)
    return JSONResponse(content={"success": True, "refunds": [serialize_record(r) for r in records]})


@router.get("/api/refunds/{order_id}/excel")
def refunds_excel(request: Request, order_id: str) -> StreamingResponse:
    """Historique des remboursements → fichier .xlsx en téléchargement."""
    gateway: RefundGatewayClient = request.app.state.gateway
    try:
        records = gateway.refund_history(order_id)
    except RefundDeskError as e:
        _raise_http(e)

    buffer = export_history_to_bytes(order_id, records)
    today = datetime.date.today().isoformat()
    filename = f"remboursements-{order_id}-{today}.xlsx"

    return StreamingResponse(
        buffer,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/api/health")
async def health() -> dict[str, str]:
    """Health check."""
    return {"status": "ok"}
