from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Body, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
from starlette.exceptions import HTTPException as StarletteHTTPException

from valuation.calculator import calculate
from valuation.config import PricingConfig
from valuation.data_models import ValuationRequest
from valuation.errors import ValuationValidationError
from valuation_service.logging_config import configure_logging, correlation_id, new_correlation_id
from valuation_service.settings import ServiceSettings
from valuation_service.storage import PostgresValuationStore, ResultStore, save_valuation

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("model", "year", "condition", "location")


# ── Request / Response Models ───────────────────────────────────────

class EstimateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    model: str | None = None
    year: int | None = None
    condition: str | None = None
    location: str | None = None
    hours: int | float | None = None
    serial_number: str | None = Field(default=None, alias="serialNumber")

    @field_validator("hours")
    @classmethod
    def _hours_not_negative(cls, value: int | float | None) -> int | float | None:
        if value is not None and value < 0:
            raise ValueError("hours must be greater than or equal to 0")
        return value

    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_FIELDS if not getattr(self, name)]

    def to_valuation_request(self) -> ValuationRequest:
        return ValuationRequest(
            model=self.model or "",
            year=int(self.year or 0),
            condition=self.condition or "",
            location=self.location or "",
            hours=self.hours or 0,
            serial_number=self.serial_number or "",
        )


class HealthResponse(BaseModel):
    status: str
    timestamp: str


class ModelsResponse(BaseModel):
    models: list[str]
    conditions: list[str]
    supportedLocations: list[str]


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# ── App Factory ─────────────────────────────────────────────────────

def create_app(
    settings: ServiceSettings | None = None,
    store: ResultStore | None = None,
) -> FastAPI:
    settings = settings or ServiceSettings()
    configure_logging(level=settings.log_level, fmt=settings.log_format)

    pricing = PricingConfig(reference_year=settings.reference_year)
    owned_store: PostgresValuationStore | None = None
    if store is None:
        owned_store = PostgresValuationStore(
            dsn=settings.database_url,
            ssl=settings.database_ssl,
            memory_fallback=settings.store_memory_fallback,
            memory_limit=settings.store_memory_limit,
        )
        store = owned_store
    result_store: ResultStore = store

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if owned_store is not None:
            await owned_store.connect()
        logger.info("Valuation API running on port %s", settings.port)
        logger.info("Environment: %s", settings.environment)
        try:
            yield
        finally:
            if owned_store is not None:
                await owned_store.close()

    app = FastAPI(title="Heavy Equipment Valuation API", version="1.0.0", lifespan=lifespan)

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next: Any) -> Response:
        cid = request.headers.get("X-Correlation-ID") or new_correlation_id()
        correlation_id.set(cid)
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            response = _error(500, "Internal server error")
        response.headers["X-Correlation-ID"] = cid
        return response

    # Added last so it wraps everything, 500s included.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
        expose_headers=["X-Correlation-ID"],
    )

    # ── Error Handling ──────────────────────────────────────────────

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        problems = []
        for err in exc.errors():
            where = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            problems.append(f"{where}: {err.get('msg')}" if where else str(err.get("msg")))
        return _error(400, f"Invalid request body: {'; '.join(problems)}")

    @app.exception_handler(ValuationValidationError)
    async def valuation_validation_handler(_: Request, exc: ValuationValidationError) -> JSONResponse:
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return _error(500, "Internal server error")

    # ── Valuation ───────────────────────────────────────────────────

    @app.post("/estimate")
    async def estimate(payload: EstimateRequest | None = Body(default=None)) -> Any:
        # An absent or null body is treated like {}.
        payload = payload or EstimateRequest()
        if payload.missing_fields():
            return _error(400, f"Missing required fields: {', '.join(REQUIRED_FIELDS)}")

        result = calculate(payload.to_valuation_request(), pricing)

        outcome = await save_valuation(result_store, result)
        if outcome.ok:
            result = result.with_valuation_id(outcome.valuation_id)
        else:
            logger.warning("Returning valuation without id: %s", outcome.error)

        return {"success": True, "status": 200, "data": result.to_payload()}

    # ── Reference Data / Health ─────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", timestamp=datetime.now(timezone.utc).isoformat())

    @app.get("/models", response_model=ModelsResponse)
    async def models() -> ModelsResponse:
        return ModelsResponse(
            models=list(pricing.pricing_table),
            conditions=list(pricing.condition_multipliers),
            supportedLocations=pricing.supported_locations,
        )

    return app
