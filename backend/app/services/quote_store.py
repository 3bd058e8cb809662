"""
Quote Revision Store — append-only quote versions per scoping record.

Every save carries the version it was computed against (``base_version``,
0 when no quote exists yet). A save whose base is no longer the latest
raises StaleVersionError. Only the append is serialised; pricing runs
outside any lock.

InMemoryQuoteStore  — reference implementation, thread-safe per record
SqlQuoteStore       — async SQLAlchemy adapter over the quote_versions table

resolve() lets callers that may hold either store await its results uniformly.
"""
import copy
import inspect
import logging
import threading
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.orm_models import QuoteVersion
from app.models.quote_models import (
    LineItemShell,
    Multiplier,
    Quote,
    QuoteTotals,
    new_id,
)
from app.services.errors import StaleVersionError

logger = logging.getLogger("s2p-quotes")


def _build_quote(
    scoping_record_id: str,
    version: int,
    shells: Iterable[LineItemShell],
    totals: QuoteTotals,
    applied_multipliers: Iterable[Multiplier],
    created_by: Optional[str] = None,
) -> Quote:
    return Quote(
        id=new_id("q"),
        scoping_record_id=scoping_record_id,
        version=version,
        line_items=tuple(copy.deepcopy(list(shells))),
        totals=copy.deepcopy(totals),
        applied_multipliers=tuple(applied_multipliers),
        created_at=datetime.now(timezone.utc),
        created_by=created_by,
    )


class InMemoryQuoteStore:
    def __init__(self):
        self._quotes: Dict[str, List[Quote]] = defaultdict(list)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, scoping_record_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(scoping_record_id, threading.Lock())

    def save(
        self,
        scoping_record_id: str,
        shells: List[LineItemShell],
        totals: QuoteTotals,
        base_version: int = 0,
        applied_multipliers: Iterable[Multiplier] = (),
        created_by: Optional[str] = None,
    ) -> Quote:
        with self._lock_for(scoping_record_id):
            versions = self._quotes[scoping_record_id]
            current = versions[-1].version if versions else 0
            if current != base_version:
                logger.warning(
                    f"Stale save rejected for {scoping_record_id}: base {base_version}, latest {current}",
                    extra={"scoping_record_id": scoping_record_id, "quote_version": current},
                )
                raise StaleVersionError(scoping_record_id, base_version, current)
            quote = _build_quote(
                scoping_record_id, current + 1, shells, totals, applied_multipliers, created_by
            )
            versions.append(quote)
        logger.info(
            f"Saved quote {quote.id} v{quote.version} ({quote.integrity_status.value})",
            extra={"scoping_record_id": scoping_record_id, "quote_version": quote.version},
        )
        return copy.deepcopy(quote)

    def latest(self, scoping_record_id: str) -> Optional[Quote]:
        versions = self._quotes.get(scoping_record_id)
        return copy.deepcopy(versions[-1]) if versions else None

    def history(self, scoping_record_id: str) -> List[Quote]:
        return copy.deepcopy(list(self._quotes.get(scoping_record_id, [])))

    def current_version(self, scoping_record_id: str) -> int:
        versions = self._quotes.get(scoping_record_id)
        return versions[-1].version if versions else 0

    def delete_record(self, scoping_record_id: str) -> int:
        """Cascade delete for a removed scoping record; returns versions removed."""
        with self._lock_for(scoping_record_id):
            removed = self._quotes.pop(scoping_record_id, [])
        logger.info(
            f"Deleted {len(removed)} quote versions",
            extra={"scoping_record_id": scoping_record_id},
        )
        return len(removed)


# ── SQL adapter ───────────────────────────────────────────────────────────────

def _to_row(quote: Quote) -> QuoteVersion:
    t = quote.totals
    return QuoteVersion(
        id=quote.id,
        scoping_record_id=quote.scoping_record_id,
        version=quote.version,
        line_items_json=[s.to_dict() for s in quote.line_items],
        applied_multipliers_json=[m.to_dict() for m in quote.applied_multipliers],
        totals_json=t.to_dict(),
        total_client_price=Decimal(str(t.total_client_price)),
        total_vendor_cost=Decimal(str(t.total_vendor_cost)),
        gross_margin_percent=Decimal(str(t.gross_margin_percent)),
        integrity_status=t.integrity_status.value,
        created_at=quote.created_at,
        created_by=quote.created_by,
    )


def _from_row(row: QuoteVersion) -> Quote:
    created_at = row.created_at
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return Quote(
        id=row.id,
        scoping_record_id=row.scoping_record_id,
        version=row.version,
        line_items=tuple(LineItemShell.from_dict(d) for d in row.line_items_json),
        totals=QuoteTotals.from_dict(row.totals_json),
        applied_multipliers=tuple(
            Multiplier(name=m["name"], factor=float(m["factor"]), trigger=m.get("trigger", ""))
            for m in row.applied_multipliers_json or []
        ),
        created_at=created_at,
        created_by=row.created_by,
    )


class SqlQuoteStore:
    """
    Same contract as InMemoryQuoteStore, async. The unique
    (scoping_record_id, version) constraint arbitrates concurrent appends
    across processes.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @property
    def engine(self):
        return self._session_factory.kw.get("bind")

    @staticmethod
    async def _current_version(session: AsyncSession, scoping_record_id: str) -> int:
        result = await session.execute(
            select(func.max(QuoteVersion.version)).where(QuoteVersion.scoping_record_id == scoping_record_id)
        )
        return result.scalar() or 0

    async def save(
        self,
        scoping_record_id: str,
        shells: List[LineItemShell],
        totals: QuoteTotals,
        base_version: int = 0,
        applied_multipliers: Iterable[Multiplier] = (),
        created_by: Optional[str] = None,
    ) -> Quote:
        async with self._session_factory() as session:
            current = await self._current_version(session, scoping_record_id)
            if current != base_version:
                raise StaleVersionError(scoping_record_id, base_version, current)
            quote = _build_quote(
                scoping_record_id, current + 1, shells, totals, applied_multipliers, created_by
            )
            session.add(_to_row(quote))
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                latest = await self._current_version(session, scoping_record_id)
                raise StaleVersionError(scoping_record_id, base_version, latest) from exc
        logger.info(
            f"Saved quote {quote.id} v{quote.version} ({quote.integrity_status.value})",
            extra={"scoping_record_id": scoping_record_id, "quote_version": quote.version},
        )
        return quote

    async def latest(self, scoping_record_id: str) -> Optional[Quote]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(QuoteVersion)
                .where(QuoteVersion.scoping_record_id == scoping_record_id)
                .order_by(QuoteVersion.version.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return _from_row(row) if row else None

    async def history(self, scoping_record_id: str) -> List[Quote]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(QuoteVersion)
                .where(QuoteVersion.scoping_record_id == scoping_record_id)
                .order_by(QuoteVersion.version.asc())
            )
            return [_from_row(r) for r in result.scalars().all()]

    async def delete_record(self, scoping_record_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(QuoteVersion).where(QuoteVersion.scoping_record_id == scoping_record_id)
            )
            await session.commit()
            return result.rowcount or 0

    async def current_version(self, scoping_record_id: str) -> int:
        async with self._session_factory() as session:
            return await self._current_version(session, scoping_record_id)


QuoteStore = Union[InMemoryQuoteStore, SqlQuoteStore]


async def resolve(value):
    """Await store results from SqlQuoteStore; pass InMemoryQuoteStore results through."""
    if inspect.isawaitable(value):
        return await value
    return value
