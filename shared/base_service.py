"""
Base service class for Garage services.

Provides the FastAPI app, request correlation, /health and /metrics, and
the mapping from GarageServiceException to JSON error bodies.
"""

from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST
from typing import Dict, Optional, Tuple
import time
import os

from shared.config import ServiceConfig, get_config
from shared.logging import configure_logging, get_logger, set_request_id, clear_context
from shared.metrics import get_metrics_collector
from shared.errors import ErrorResponse, GarageServiceException, ValidationError


class BaseService:
    """Base service class with common functionality."""

    # Dependencies that must report "ok" for /health to answer 200.
    # Anything else in _check_dependencies is informational.
    required_dependencies: Tuple[str, ...] = ()

    def __init__(self, service_name: str, port: int, config: Optional[ServiceConfig] = None):
        self.service_name = service_name
        self.port = port
        self.config = config or get_config(service_name, port)
        self.logger = get_logger(service_name)
        self.metrics = get_metrics_collector(service_name)
        self._start_time = time.time()

        configure_logging(service_name, self.config.log_level)

        self.app = self._create_app()
        self._setup_middleware()
        self._setup_routes()
        self._setup_error_handlers()

    def _create_app(self) -> FastAPI:
        local = self.config.env == "local"
        return FastAPI(
            title=f"{self.service_name.title()} Service",
            description=f"Garage - {self.service_name.title()} Service",
            version="1.0.0",
            docs_url="/docs" if local else None,
            redoc_url="/redoc" if local else None,
        )

    def _setup_middleware(self):
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"] if self.config.env == "local" else [],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @self.app.middleware("http")
        async def observe_request(request: Request, call_next):
            request_id = set_request_id(request.headers.get("X-Request-Id"))
            start_time = time.perf_counter()
            try:
                response = await call_next(request)
            finally:
                duration = time.perf_counter() - start_time

            # Label by route template so /api/customers/{customer_id} is one series.
            route = request.scope.get("route")
            endpoint = getattr(route, "path", request.url.path)

            self.metrics.record_http_request(request.method, endpoint, response.status_code, duration)
            self.logger.info(
                "HTTP request",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration * 1000, 2)
            )

            response.headers["X-Request-Id"] = request_id
            clear_context()
            return response

    def _setup_routes(self):
        @self.app.get("/health")
        async def health_check():
            """Health check endpoint."""
            try:
                dependencies = await self._check_dependencies()
            except Exception as e:
                self.logger.error("Health check failed", error=str(e))
                self.metrics.record_health_check("error")
                return JSONResponse(
                    status_code=503,
                    content={"service": self.service_name, "status": "error", "error": str(e)}
                )

            failing = [name for name in self.required_dependencies if dependencies.get(name) != "ok"]
            status = "degraded" if failing else "ok"
            self.metrics.record_health_check(status)

            body = {
                "service": self.service_name,
                "status": status,
                "uptime_seconds": self._get_uptime(),
                "dependencies": dependencies,
                "version": "1.0.0",
                "commit": os.getenv("GIT_COMMIT", "unknown")
            }
            return JSONResponse(status_code=503 if failing else 200, content=body)

        @self.app.get("/metrics")
        async def metrics_endpoint():
            """Prometheus metrics endpoint."""
            return Response(content=self.metrics.export(), media_type=CONTENT_TYPE_LATEST)

    def _setup_error_handlers(self):
        @self.app.exception_handler(GarageServiceException)
        async def garage_exception_handler(request: Request, exc: GarageServiceException):
            return self._error_response(exc)

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            # Malformed bodies, query parameters or headers answer 400 like handler checks do.
            error = ValidationError("Invalid request", {"errors": jsonable_encoder(exc.errors())})
            return self._error_response(error)

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request: Request, exc: Exception):
            self.logger.error("Unhandled exception", error=str(exc), exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            body = GarageServiceException("INTERNAL_ERROR", "Internal server error").to_response()
            return JSONResponse(status_code=500, content=body.model_dump())

    def _error_response(self, exc: GarageServiceException) -> JSONResponse:
        self.logger.warning("Request rejected", code=exc.code, message=exc.message, details=exc.details)
        self.metrics.record_error(exc.code)
        body: ErrorResponse = exc.to_response()
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies. Override in subclasses."""
        return {}

    def _get_uptime(self) -> float:
        return time.time() - self._start_time

    def run(self):
        """Run the service."""
        import uvicorn
        uvicorn.run(
            self.app,
            host=self.config.host,
            port=self.config.port,
            log_level=self.config.log_level.lower()
        )
