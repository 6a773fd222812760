"""FastAPI application serving configured endpoints and their API document."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.responses import Response

from flapi.config.serving import ServingConfig
from flapi.docs.openapi import render_yaml
from flapi.serving.executor import RequestContext
from flapi.serving.runtime import AppRuntime, build_runtime
from flapi.services.errors import (
    AuthenticationError,
    ProblemError,
    RateLimitExceededError,
    log_problem,
    problem,
)

LOG = logging.getLogger("flapi.serving.http.app")

BANNER = r"""
         ___
     ___( o)>   Welcome to
     \ <_. )    flAPI
      `---'

    Fast and Flexible API Framework
        powered by DuckDB
"""


def get_runtime(request: Request) -> AppRuntime:
    """
    Retrieve the runtime from application state.

    Returns
    -------
    AppRuntime
        Runtime installed by the lifespan handler.

    Raises
    ------
    RuntimeError
        If the application has not started.
    """
    runtime: AppRuntime | None = getattr(request.app.state, "runtime", None)
    if runtime is None:
        message = "flapi runtime is not initialized"
        raise RuntimeError(message)
    return runtime


def problem_response(exc: ProblemError) -> JSONResponse:
    """
    Convert a ProblemError into a JSON HTTP response.

    Returns
    -------
    JSONResponse
        Response with RFC 9457 payload and protocol headers.
    """
    detail = exc.problem_detail
    status_code = detail.status or status.HTTP_500_INTERNAL_SERVER_ERROR
    headers: dict[str, str] = {}
    if isinstance(exc, RateLimitExceededError):
        headers["Retry-After"] = str(exc.retry_after)
    if isinstance(exc, AuthenticationError):
        realm = "Basic" if exc.scheme == "basic" else "Bearer"
        headers["WWW-Authenticate"] = f'{realm} realm="flapi"'
    return JSONResponse(
        status_code=status_code,
        content=detail.to_dict(),
        headers=headers,
        media_type="application/problem+json",
    )


def install_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers for consistent Problem Details."""

    @app.exception_handler(ProblemError)
    def _handle_problem(_request: Request, exc: ProblemError) -> JSONResponse:
        if (exc.problem_detail.status or 500) >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            log_problem(LOG, exc.problem_detail)
        return problem_response(exc)

    @app.exception_handler(Exception)
    def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        detail = problem(
            "internal.unexpected",
            "Internal Server Error",
            str(exc) or type(exc).__name__,
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            extras={"path": request.url.path},
        )
        log_problem(LOG, detail)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=detail.to_dict(),
            media_type="application/problem+json",
        )


def install_logging_middleware(app: FastAPI) -> None:
    """Add structured logging for each request."""

    @app.middleware("http")
    async def _log_request(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        LOG.info(
            "Handled %s %s status=%s duration_ms=%.2f",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
        )
        return response


def _request_path(request: Request) -> str:
    raw_path = request.scope.get("raw_path")
    if isinstance(raw_path, bytes) and raw_path:
        return raw_path.decode("latin-1")
    return request.url.path


def build_config_router() -> APIRouter:
    """
    Construct the router for configuration inspection and refresh.

    Returns
    -------
    APIRouter
        Router exposing ``GET /config`` and ``DELETE /config``.
    """
    router = APIRouter()

    @router.get("/config")
    def get_config(request: Request) -> Response:
        """
        Dump project metadata and the active endpoint catalog.

        Returns
        -------
        Response
            JSON dump, or 500 text with the failure detail.
        """
        try:
            payload = get_runtime(request).catalog.snapshot().to_dict()
            return JSONResponse(content=jsonable_encoder(payload))
        except Exception as exc:  # noqa: BLE001
            log_problem(LOG, problem("config.dump_failed", "Internal Server Error", str(exc)))
            return PlainTextResponse(
                f"Internal Server Error: {exc}",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

    @router.delete("/config")
    def refresh_config(request: Request) -> Response:
        """
        Reload configuration and swap the catalog.

        Returns
        -------
        Response
            Plain-text success or failure message.
        """
        LOG.info("Config refresh requested")
        try:
            snapshot = get_runtime(request).refresh()
        except Exception as exc:  # noqa: BLE001
            log_problem(
                LOG,
                problem("config.refresh_failed", "Failed to refresh configuration", str(exc)),
            )
            return PlainTextResponse(
                f"Failed to refresh configuration: {exc}",
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
        LOG.info("Config refreshed generation=%d", snapshot.generation)
        return PlainTextResponse("Configuration refreshed successfully")

    return router


def build_docs_router() -> APIRouter:
    """
    Construct the router serving the synthesized API document.

    Returns
    -------
    APIRouter
        Router exposing JSON and YAML renderings.
    """
    router = APIRouter()

    @router.get("/openapi.json")
    def openapi_json(request: Request) -> JSONResponse:
        """
        Return the API document as JSON.

        Returns
        -------
        JSONResponse
            OpenAPI document.
        """
        return JSONResponse(content=get_runtime(request).document())

    @router.get("/openapi.yaml")
    def openapi_yaml(request: Request) -> Response:
        """
        Return the API document as YAML.

        Returns
        -------
        Response
            OpenAPI document rendered as YAML.
        """
        body = render_yaml(get_runtime(request).document())
        return Response(content=body, media_type="application/yaml")

    return router


def build_endpoint_router() -> APIRouter:
    """
    Construct the catch-all router for configured endpoints.

    Returns
    -------
    APIRouter
        Router dispatching ``GET``/``DELETE`` requests through the catalog.
    """
    router = APIRouter()

    @router.api_route("/{path:path}", methods=["GET", "DELETE"])
    def handle_endpoint(request: Request, path: str) -> Response:  # noqa: ARG001
        """
        Resolve the request against the catalog and execute the endpoint.

        Returns
        -------
        Response
            JSON page of rows, or 404 ``Not Found``.
        """
        runtime = get_runtime(request)
        request_path = _request_path(request)
        result = runtime.dispatcher.dispatch(request.method, request_path)
        if result.route is None:
            return PlainTextResponse("Not Found", status_code=status.HTTP_404_NOT_FOUND)
        ctx = RequestContext(
            path=request.url.path,
            query_params=dict(request.query_params),
            headers=dict(request.headers),
            client_key=request.client.host if request.client is not None else "anonymous",
        )
        outcome = runtime.executor.execute(result.route, ctx)
        headers: dict[str, str] = {}
        if outcome.rate_limit_remaining >= 0:
            headers["X-RateLimit-Remaining"] = str(outcome.rate_limit_remaining)
        return JSONResponse(content=jsonable_encoder(outcome.to_payload()), headers=headers)

    return router


def register_routes(app: FastAPI) -> None:
    """Wire all routes; the endpoint catch-all must come last."""

    @app.get("/")
    def banner() -> PlainTextResponse:
        return PlainTextResponse(BANNER)

    app.include_router(build_config_router())
    app.include_router(build_docs_router())
    app.include_router(build_endpoint_router())


def create_app(
    *,
    settings_loader: Callable[[], ServingConfig] = ServingConfig.from_env,
    runtime_factory: Callable[[ServingConfig], AppRuntime] = build_runtime,
) -> FastAPI:
    """
    Build the FastAPI application with configured lifecycle and routes.

    Parameters
    ----------
    settings_loader:
        Factory for runtime settings.
    runtime_factory:
        Factory that loads configuration and wires the runtime.

    Returns
    -------
    FastAPI
        Configured FastAPI instance.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        settings = settings_loader()
        runtime = runtime_factory(settings)
        app.state.runtime = runtime
        try:
            await asyncio.sleep(0)
            yield
        finally:
            runtime.close()

    app = FastAPI(
        title="flapi",
        description="Configuration-driven REST API over DuckDB queries.",
        version="0.1.0",
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )

    install_exception_handlers(app)
    install_logging_middleware(app)
    register_routes(app)
    return app


__all__ = [
    "BANNER",
    "build_config_router",
    "build_docs_router",
    "build_endpoint_router",
    "create_app",
    "get_runtime",
    "install_exception_handlers",
    "problem_response",
]
