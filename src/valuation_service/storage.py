from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Float, Integer, MetaData, String, Table, Column, insert, select
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from valuation.data_models import ValuationResult

logger = logging.getLogger(__name__)

metadata = MetaData()

valuations_table = Table(
    "valuations",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("model", String(64), nullable=False, index=True),
    Column("year", Integer, nullable=False),
    Column("condition", String(32), nullable=False),
    Column("location", String(128), nullable=False),
    Column("hours_reading", Float, nullable=False, default=0),
    Column("serial_number", String(128), nullable=False, default=""),
    Column("base_price", Float, nullable=False),
    Column("age_depreciation", Float, nullable=False),
    Column("hour_based_deduction", Float, nullable=False),
    Column("condition_adjustment", Float, nullable=False),
    Column("location_adjustment", Float, nullable=False),
    Column("final_price", Float, nullable=False),
    Column("confidence_score", Float, nullable=False),
    Column("pricing_api_response", JSON, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

_SSL_REQUIRED_MODES = {"require", "verify-ca", "verify-full"}


class ResultStore(Protocol):
    async def insert_valuation(self, record: dict[str, Any]) -> str: ...


@dataclass(frozen=True)
class StoreOutcome:
    """What happened to a persistence attempt. Failures are data, not exceptions."""

    valuation_id: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.valuation_id is not None


def normalize_dsn(dsn: str) -> tuple[URL, bool]:
    """Point libpq-style URLs at asyncpg and pull out ``sslmode``.

    Returns the rewritten URL and whether the URL asked for TLS.
    """
    url = make_url(dsn)
    if url.drivername in ("postgres", "postgresql"):
        url = url.set(drivername="postgresql+asyncpg")
    ssl_required = False
    if "sslmode" in url.query:
        mode = url.query["sslmode"]
        if isinstance(mode, tuple):
            mode = mode[-1]
        ssl_required = mode in _SSL_REQUIRED_MODES
        url = url.difference_update_query(["sslmode"])
    return url, ssl_required


def build_valuation_row(result: ValuationResult) -> dict[str, Any]:
    payload = result.to_payload()
    breakdown = payload["breakdown"]
    request = result.request
    return {
        "model": request.model,
        "year": request.year,
        "condition": request.condition,
        "location": request.location,
        "hours_reading": request.hours,
        "serial_number": request.serial_number,
        "base_price": breakdown["basePrice"],
        "age_depreciation": breakdown["ageDepreciation"],
        "hour_based_deduction": breakdown["hourBasedDeduction"],
        "condition_adjustment": breakdown["conditionAdjustment"],
        "location_adjustment": breakdown["locationAdjustment"],
        "final_price": payload["finalPrice"],
        "confidence_score": payload["confidenceScore"],
        "pricing_api_response": {"success": True, "status": 200, "data": payload},
    }


class StoreUnavailableError(RuntimeError):
    """No database connection and in-memory mode is off."""


class PostgresValuationStore:
    """Append-only sink for priced valuations.

    Without a live engine, rows are kept in a bounded process-local list only
    when ``memory_fallback`` is set; otherwise inserts fail so callers never
    hand out ids for rows that were not stored.
    """

    def __init__(
        self,
        dsn: str,
        ssl: bool = False,
        memory_fallback: bool = False,
        memory_limit: int = 1000,
    ) -> None:
        self.dsn = dsn
        self.ssl = ssl
        self.memory_fallback = memory_fallback
        self.memory_limit = memory_limit
        self.engine: AsyncEngine | None = None
        self._fallback_mode = False
        self._mem_valuations: list[dict[str, Any]] = []

    async def connect(self) -> None:
        try:
            url, ssl_from_url = normalize_dsn(self.dsn)
            connect_args: dict[str, Any] = {}
            if self.ssl or ssl_from_url:
                connect_args["ssl"] = "require"
            self.engine = create_async_engine(url, future=True, pool_pre_ping=True, connect_args=connect_args)
            await self.init_schema()
        except Exception as exc:
            if self.memory_fallback:
                logger.warning("Postgres unavailable, keeping valuations in memory: %s", exc)
            else:
                logger.error("Postgres unavailable, valuations will not be persisted: %s", exc)
            if self.engine is not None:
                await self.engine.dispose()
            self._fallback_mode = True
            self.engine = None

    async def close(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()

    async def ping(self) -> bool:
        if self.engine is None or self._fallback_mode:
            return False
        try:
            async with self.engine.connect() as conn:
                await conn.execute(select(1))
            return True
        except Exception:
            return False

    async def init_schema(self) -> None:
        if self.engine is None:
            return
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def insert_valuation(self, record: dict[str, Any]) -> str:
        valuation_id = str(uuid4())
        row = {
            "id": valuation_id,
            "model": record["model"],
            "year": int(record["year"]),
            "condition": record["condition"],
            "location": record["location"],
            "hours_reading": float(record.get("hours_reading") or 0),
            "serial_number": record.get("serial_number") or "",
            "base_price": float(record["base_price"]),
            "age_depreciation": float(record["age_depreciation"]),
            "hour_based_deduction": float(record["hour_based_deduction"]),
            "condition_adjustment": float(record["condition_adjustment"]),
            "location_adjustment": float(record["location_adjustment"]),
            "final_price": float(record["final_price"]),
            "confidence_score": float(record["confidence_score"]),
            "pricing_api_response": record["pricing_api_response"],
            "created_at": datetime.now(timezone.utc),
        }
        if self.engine is None:
            if not self.memory_fallback:
                raise StoreUnavailableError("valuation store is not connected")
            self._mem_valuations.append(row)
            del self._mem_valuations[:-self.memory_limit]
            return valuation_id
        async with self.engine.begin() as conn:
            await conn.execute(insert(valuations_table).values(**row))
        return valuation_id

    async def get_valuation_by_id(self, valuation_id: str) -> dict[str, Any] | None:
        if self.engine is None:
            for row in self._mem_valuations:
                if row["id"] == valuation_id:
                    return row
            return None
        stmt = select(valuations_table).where(valuations_table.c.id == valuation_id)
        async with self.engine.connect() as conn:
            row = (await conn.execute(stmt)).first()
        return dict(row._mapping) if row else None

    async def get_recent_valuations(self, limit: int = 50) -> list[dict[str, Any]]:
        if limit <= 0:
            return []
        if self.engine is None:
            return list(reversed(self._mem_valuations[-limit:]))
        stmt = (
            select(valuations_table)
            .order_by(valuations_table.c.created_at.desc())
            .limit(limit)
        )
        async with self.engine.connect() as conn:
            rows = (await conn.execute(stmt)).all()
        return [dict(r._mapping) for r in rows]


async def save_valuation(store: ResultStore, result: ValuationResult) -> StoreOutcome:
    """Persist a priced result without ever failing the caller."""
    try:
        valuation_id = await store.insert_valuation(build_valuation_row(result))
    except Exception as exc:
        logger.exception("Database error while saving valuation for %s", result.request.model)
        return StoreOutcome(error=str(exc) or type(exc).__name__)
    return StoreOutcome(valuation_id=str(valuation_id))
