"""Application FastAPI — point d'entrée du backend API."""

from __future__ import annotations

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from refund_desk.config.loader import load_config
from refund_desk.gateway.client import RefundGatewayClient

from .routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Charge la configuration YAML et ouvre le client passerelle au démarrage."""
    config_dir = Path(os.getenv("CONFIG_DIR", "./config"))
    config = load_config(config_dir)
    application.state.config = config
    application.state.gateway = RefundGatewayClient(config.gateway)
    logger.info("Configuration chargée depuis %s", config_dir)
    try:
        yield
    finally:
        application.state.gateway.close()


app = FastAPI(
    title="refund-desk API",
    description="API REST pour le calcul et l'exécution des remboursements de commandes Shopify.",
    lifespan=lifespan,
)

# CORS
cors_origins = os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_methods=["POST", "GET"],
    allow_headers=["*"],
)

app.include_router(router)
