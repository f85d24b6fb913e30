from __future__ import annotations

import logging
from importlib import import_module
from pkgutil import iter_modules

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.httpsredirect import HTTPSRedirectMiddleware
from starlette.middleware.trustedhost import TrustedHostMiddleware

from .config import settings
from .domain_selection import Domain, DomainSelection
from .errors import register_exception_handlers
from .health import readiness_state
from .observability import configure_observability
from .routers import meta

logger = logging.getLogger(__name__)

_DOMAINS_PACKAGE = "ado_gateway.domains"
_DOCS_PATHS = {"/docs", "/redoc", "/openapi.json", "/docs/oauth2-redirect"}
_CSP_POLICY = (
    "default-src 'self'; "
    "base-uri 'self'; "
    "frame-ancestors 'none'; "
    "object-src 'none'; "
    "form-action 'self'"
)


def _is_write_path(method: str, path: str) -> bool:
    return path.startswith("/api/") and method in {"POST", "PUT", "PATCH", "DELETE"}


def _resolve_api_version(path: str, header_version: str | None) -> tuple[str, bool]:
    supported = set(settings.api_supported_versions)
    latest = settings.api_latest_version
    normalized = path.strip("/")
    path_parts = normalized.split("/") if normalized else []

    if len(path_parts) >= 2 and path_parts[0] == "api" and path_parts[1] in supported:
        return path_parts[1], False

    if header_version in supported:
        return str(header_version), False

    return latest, True


async def api_version_middleware(request: Request, call_next):
    version, defaulted = _resolve_api_version(
        request.url.path, request.headers.get("x-api-version")
    )
    request.state.api_version = version
    response = await call_next(request)
    response.headers["X-API-Version"] = version
    if defaulted:
        response.headers["X-API-Version-Defaulted"] = "true"
    return response


async def security_headers_middleware(request: Request, call_next):
    response = await call_next(request)
    if not settings.security_headers_enabled:
        return response

    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "no-referrer")
    response.headers.setdefault("Cross-Origin-Resource-Policy", "same-origin")
    if settings.security_csp_enabled and request.url.path not in _DOCS_PATHS:
        response.headers.setdefault("Content-Security-Policy", _CSP_POLICY)
    if settings.security_hsts_enabled and request.url.scheme == "https":
        response.headers.setdefault(
            "Strict-Transport-Security",
            f"max-age={settings.security_hsts_max_age_seconds}; includeSubDomains",
        )
    if _is_write_path(request.method, request.url.path):
        response.headers["Cache-Control"] = "no-store"
    return response


def domain_for_package(package_name: str) -> Domain | None:
    token = package_name.replace("_", "-")
    try:
        return Domain(token)
    except ValueError:
        return None


def _discover_domain_routers(
    selection: DomainSelection, package_name: str = _DOMAINS_PACKAGE
) -> list[tuple[Domain, APIRouter]]:
    try:
        package = import_module(package_name)
    except ModuleNotFoundError as exc:
        if exc.name == package_name:
            return []
        raise

    package_paths = getattr(package, "__path__", None)
    if not package_paths:
        return []

    routers: list[tuple[Domain, APIRouter]] = []
    for module_info in sorted(iter_modules(package_paths), key=lambda item: item.name):
        if not module_info.ispkg:
            continue
        domain = domain_for_package(module_info.name)
        if domain is None:
            logger.warning("Skipping route package '%s': unknown domain", module_info.name)
            continue
        if not selection.is_enabled(domain):
            logger.info("Domain '%s' disabled; routes not mounted", domain.value)
            continue
        module_path = f"{package_name}.{module_info.name}.router"
        router = _load_optional_domain_router(module_path)
        if router is not None:
            routers.append((domain, router))
    return routers


def _load_optional_domain_router(module_path: str) -> APIRouter | None:
    try:
        module = import_module(module_path)
    except ModuleNotFoundError as exc:
        if exc.name == module_path:
            return None
        raise
    router = getattr(module, "router", None)
    if isinstance(router, APIRouter):
        return router
    return None


def _include_api_routers(app: FastAPI, selection: DomainSelection) -> list[Domain]:
    latest_prefix = f"/api/{settings.api_latest_version}"
    if settings.api_latest_version not in settings.api_supported_versions:
        raise RuntimeError("api_latest_version must be included in api_supported_versions")

    app.include_router(meta.router, prefix=latest_prefix)
    mounted: list[Domain] = []
    for domain, router in _discover_domain_routers(selection):
        app.include_router(router, prefix=latest_prefix)
        mounted.append(domain)
    return mounted


def _add_service_routes(app: FastAPI) -> None:
    @app.get("/", include_in_schema=False)
    def root():
        return {
            "message": f"{settings.service_name} is running",
            "docs": "/docs",
            "api": f"/api/{settings.api_latest_version}",
        }

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "service": settings.service_name,
            "version": settings.service_version,
            "organization": settings.ado_organization,
        }

    @app.get("/ready")
    def ready():
        is_ready, checks = readiness_state()
        if not is_ready:
            raise HTTPException(
                status_code=503,
                detail={
                    "detail": "Service dependencies are not ready",
                    "error_code": "service_not_ready",
                },
            )
        return {"status": "ok", "checks": checks}


def create_app(selection: DomainSelection | None = None) -> FastAPI:
    if selection is None:
        selection = DomainSelection.from_input(settings.ado_domains)

    app = FastAPI(title=settings.service_name, version=settings.service_version)
    configure_observability(app)
    register_exception_handlers(app)
    app.state.domain_selection = selection

    if settings.trusted_hosts:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.trusted_hosts)

    if settings.security_https_redirect:
        app.add_middleware(HTTPSRedirectMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-API-Version"],
    )
    app.middleware("http")(api_version_middleware)
    app.middleware("http")(security_headers_middleware)

    mounted = _include_api_routers(app, selection)
    _add_service_routes(app)
    app.state.mounted_domains = tuple(domain.value for domain in mounted)

    logger.info(
        "Enabled domains: %s; mounted route groups: %s",
        ", ".join(selection.enabled_domains()),
        ", ".join(app.state.mounted_domains) or "none",
    )
    return app


app = create_app()
