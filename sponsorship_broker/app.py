"""Sponsorship Service - Main application."""

import functools
import json
import logging
from typing import Any, Awaitable, Iterable, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .core import (
    Config,
    ErrorKind,
    SponsorshipError,
    ValidationFailed,
    configure_logging,
    get_config,
    load_tank_configurations,
    utcnow,
)
from .core.errors import error_message
from .models import GasTankConfiguration
from .services import (
    AllowAllPolicy,
    SponsorshipPolicy,
    TankRegistry,
    create_gas_tank_account,
    initialize_sponsorship,
)
from .services import handlers
from .services.orchestrator import AccountFactory

__version__ = "1.0.0"

logger = logging.getLogger(__name__)

INTERNAL_FALLBACK = "Internal server error"


def error_response(exc: BaseException, fallback: str) -> JSONResponse:
    """Build the ``{"errors": [message]}`` envelope for a failure."""
    kind = exc.kind if isinstance(exc, SponsorshipError) else ErrorKind.INTERNAL
    return JSONResponse(
        status_code=400,
        content={"errors": [error_message(exc, fallback)]},
        headers={"X-Error-Kind": kind.value},
    )


async def _respond(operation: Awaitable[Any], fallback: str) -> Any:
    try:
        return await operation
    except SponsorshipError as exc:
        logger.info("[API] %s request rejected: %s", exc.kind.value, exc)
        return error_response(exc, fallback)
    except Exception as exc:
        logger.exception("[API] Unexpected error")
        return error_response(exc, fallback)


def create_app(
    config: Optional[Config] = None,
    tank_configs: Optional[Iterable[GasTankConfiguration]] = None,
    account_factory: Optional[AccountFactory] = None,
    policy: Optional[SponsorshipPolicy] = None,
    registry: Optional[TankRegistry] = None,
) -> FastAPI:
    """Application factory.

    Gas tanks are initialized in the startup hook, so no request is served
    before the registry is populated.
    """
    if config is None:
        config = get_config()
    configure_logging(config.log_level)

    app = FastAPI(title="Gas Tank Sponsorship Service", version=__version__)
    app.state.config = config
    app.state.registry = registry if registry is not None else TankRegistry()
    app.state.policy = policy if policy is not None else AllowAllPolicy()
    app.state.account_factory = account_factory or functools.partial(
        create_gas_tank_account, config=config
    )
    app.state.tank_configs = list(tank_configs) if tank_configs is not None else None

    # ========================================
    # Lifecycle Events
    # ========================================

    @app.on_event("startup")
    async def on_startup() -> None:
        """Deploy and register every configured gas tank."""
        configs = app.state.tank_configs
        if configs is None:
            configs = load_tank_configurations(config.gas_tanks_file, config.default_private_key)
        logger.info("[TANK] Initializing %d gas tank configuration(s)", len(configs))
        await initialize_sponsorship(
            configs, app.state.registry, app.state.account_factory, config
        )
        logger.info(
            "[TANK] %d gas tank(s) registered on chains %s",
            len(app.state.registry),
            app.state.registry.chain_ids(),
        )

    # ========================================
    # Middleware & error envelope
    # ========================================

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def on_request_validation_error(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return error_response(ValidationFailed("Invalid request"), INTERNAL_FALLBACK)

    @app.exception_handler(Exception)
    async def on_unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("[API] Unhandled error on %s", request.url.path)
        return error_response(exc, INTERNAL_FALLBACK)

    # ========================================
    # REST Endpoints
    # ========================================

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint."""
        return {
            "status": "ok",
            "timestamp": utcnow().isoformat(),
            "version": __version__,
            "tanks": len(app.state.registry),
        }

    router = APIRouter(prefix=config.api_prefix)

    @router.get("/sponsorship/info")
    async def sponsorship_info():
        """Balances of all gas tanks grouped by chain id."""
        return await _respond(handlers.get_info(app.state.registry), handlers.INFO_FALLBACK)

    @router.get("/sponsorship/nonce/{chain_id}/{gas_tank_address}")
    async def sponsorship_nonce(chain_id: str, gas_tank_address: str):
        """Current nonce of a gas tank account."""
        return await _respond(
            handlers.get_nonce(app.state.registry, chain_id, gas_tank_address),
            handlers.NONCE_FALLBACK,
        )

    @router.get("/sponsorship/receipt/{chain_id}/{tx_hash}")
    async def sponsorship_receipt(chain_id: str, tx_hash: str):
        """Receipt of a sponsored transaction."""
        return await _respond(
            handlers.get_receipt(app.state.registry, chain_id, tx_hash),
            handlers.RECEIPT_FALLBACK,
        )

    @router.post("/sponsorship/sign/{chain_id}/{gas_tank_address}")
    async def sponsorship_sign(chain_id: str, gas_tank_address: str, request: Request):
        """Sign a sponsorship quote with a gas tank."""

        async def sign() -> Any:
            try:
                payload = await request.json()
            except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                raise ValidationFailed("Invalid sponsorship quote") from exc
            return await handlers.sign_quote(
                app.state.registry,
                app.state.policy,
                chain_id,
                gas_tank_address,
                payload,
                client_host=request.client.host if request.client else None,
                headers=dict(request.headers),
            )

        return await _respond(sign(), handlers.SIGN_FALLBACK)

    app.include_router(router)
    return app

