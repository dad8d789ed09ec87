"""
SQLAlchemy integration — receipt slot in a relational table.

Usage:
    session_factory, engine = await create_receipt_database(
        "sqlite+aiosqlite:///receipts.db"
    )
    store = SQLAlchemyReceiptStore(session_factory)
"""

from __future__ import annotations

from datetime import datetime, UTC

import structlog
from sqlalchemy import String, DateTime, Text, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from kungfu import Result, Ok, Error

from storefront.gateway import Order
from storefront.receipt._store import (
    RECEIPT_KEY,
    ReceiptError,
    ReceiptErrorKind,
    encode,
    decode,
)

log = structlog.get_logger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# Table
# ═══════════════════════════════════════════════════════════════════════════════

class Base(DeclarativeBase):
    pass


class ReceiptTable(Base):
    """One row per slot key. The storefront only ever uses RECEIPT_KEY."""

    __tablename__ = "receipts"

    key: Mapped[str] = mapped_column(String(64), primary_key=True)
    order_id: Mapped[str] = mapped_column(String(100), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    saved_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)


async def create_receipt_database(
    url: str = "sqlite+aiosqlite:///:memory:",
) -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """Create tables and return (session_factory, engine)."""
    engine = create_async_engine(url, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_sessionmaker(engine, expire_on_commit=False), engine


# ═══════════════════════════════════════════════════════════════════════════════
# Store
# ═══════════════════════════════════════════════════════════════════════════════

class SQLAlchemyReceiptStore:
    """
    Receipt store over an async SQLAlchemy session factory.

    Example:
        store = SQLAlchemyReceiptStore(session_factory)
        await store.save(order)
        match await store.load():
            case Ok(Order() as order): ...
            case Ok(None): ...
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        key: str = RECEIPT_KEY,
    ) -> None:
        self._session_factory = session_factory
        self._key = key

    async def save(self, order: Order) -> Result[None, ReceiptError]:
        try:
            async with self._session_factory() as session:
                await session.merge(
                    ReceiptTable(
                        key=self._key,
                        order_id=order.id,
                        payload=encode(order),
                        saved_at=datetime.now(UTC).replace(tzinfo=None),
                    )
                )
                await session.commit()
        except SQLAlchemyError as e:
            return Error(ReceiptError(ReceiptErrorKind.BACKEND, f"Failed to save: {e}", e))
        log.info("receipt_saved", key=self._key, order_id=order.id)
        return Ok(None)

    async def load(self) -> Result[Order | None, ReceiptError]:
        try:
            async with self._session_factory() as session:
                row = await session.get(ReceiptTable, self._key)
                payload = row.payload if row is not None else None
        except SQLAlchemyError as e:
            return Error(ReceiptError(ReceiptErrorKind.BACKEND, f"Failed to load: {e}", e))
        if payload is None:
            return Ok(None)
        return decode(payload)

    async def clear(self) -> Result[bool, ReceiptError]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    delete(ReceiptTable).where(ReceiptTable.key == self._key)
                )
                await session.commit()
        except SQLAlchemyError as e:
            return Error(ReceiptError(ReceiptErrorKind.BACKEND, f"Failed to clear: {e}", e))
        existed = bool(result.rowcount)  # type: ignore[attr-defined]
        log.info("receipt_cleared", key=self._key, existed=existed)
        return Ok(existed)


__all__ = (
    "Base",
    "ReceiptTable",
    "create_receipt_database",
    "SQLAlchemyReceiptStore",
)
