import logging

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from grc_ai.api.routes import router
from grc_ai.config.settings import Settings, get_settings
from grc_ai.core.errors import AppError, app_error_response, request_id_from_request
from grc_ai.core.logging import configure_logging
from grc_ai.identity.resolver import IdentityResolver
from grc_ai.middleware.cors import CORSMiddleware
from grc_ai.middleware.request_id import RequestIDMiddleware
from grc_ai.prompts.assembly import PromptAssembler
from grc_ai.providers.registry import AdapterRegistry, build_adapter_registry
from grc_ai.providers.resolution import ProviderResolver
from grc_ai.services.dispatch_service import DispatchService
from grc_ai.storage import create_store
from grc_ai.storage.base import Store
from grc_ai.usage.recorder import UsageRecorder

logger = logging.getLogger("grc.app")


def _build_provider_resolver(
    settings: Settings, store: Store, adapters: AdapterRegistry
) -> ProviderResolver:
    return ProviderResolver(
        store=store,
        primary_type=settings.provider_primary_type_normalized,
        type_filter=adapters.supports if settings.provider_global_type_filter else None,
    )


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(first.get("msg", "invalid value"))
    return f"Invalid request: {location} {message}".replace("  ", " ").strip()


def create_app(
    store: Store | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the dispatcher application.

    ``store`` and ``transport`` replace the configured store backend and the
    upstream HTTP transport, which lets tests run without external services.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="GRC AI Dispatcher", version="0.1.0")

    app.add_middleware(CORSMiddleware)
    app.add_middleware(RequestIDMiddleware)

    store = store or create_store(settings)
    adapters = build_adapter_registry(settings, transport=transport)

    app.state.store = store
    app.state.dispatch_service = DispatchService(
        settings=settings,
        store=store,
        identity_resolver=IdentityResolver(settings, store),
        provider_resolver=_build_provider_resolver(settings, store, adapters),
        prompt_assembler=PromptAssembler(store),
        adapter_registry=adapters,
        usage_recorder=UsageRecorder(settings, store),
    )

    strict = settings.strict_status_codes

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        request_id = request_id_from_request(request)
        return app_error_response(
            exc.status_code, exc.code, exc.error_type, exc.message, request_id, strict
        )

    @app.exception_handler(RequestValidationError)
    async def validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        request_id = request_id_from_request(request)
        return app_error_response(
            422,
            "request_validation_failed",
            "validation",
            _validation_message(exc),
            request_id,
            strict,
        )

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception) -> JSONResponse:
        request_id = request_id_from_request(request)
        logger.exception(
            "unhandled_error",
            extra={"request_id": request_id, "error": type(exc).__name__},
        )
        return app_error_response(
            500, "internal_error", "internal", "Internal server error", request_id, strict
        )

    app.include_router(router)
    return app
