"""
Receipt store — one durable slot holding the last captured order.

All methods return Result for explicit error handling. load() is idempotent
and side-effect-free: a corrupt slot is reported, never repaired or removed.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from dataclasses import dataclass
from enum import Enum, auto
from pathlib import Path
from typing import Any, Protocol

import structlog
from kungfu import Result, Ok, Error

from storefront.gateway import Order

log = structlog.get_logger(__name__)

RECEIPT_KEY = "order_receipt"


# ═══════════════════════════════════════════════════════════════════════════════
# Receipt Error
# ═══════════════════════════════════════════════════════════════════════════════


class ReceiptErrorKind(Enum):
    IO = auto()
    CORRUPT = auto()
    BACKEND = auto()


@dataclass(frozen=True)
class ReceiptError:
    """Receipt storage error."""

    kind: ReceiptErrorKind
    message: str
    cause: Exception | None = None

    def __str__(self) -> str:
        return f"[{self.kind.name}] {self.message}"


def encode(order: Order) -> str:
    return json.dumps(order.to_json(), sort_keys=True)


def decode(payload: Any) -> Result[Order, ReceiptError]:
    """Parse a stored receipt (JSON text or an already-loaded mapping)."""
    try:
        data = json.loads(payload) if isinstance(payload, str | bytes) else payload
        return Ok(Order.from_json(data))
    except (ValueError, KeyError, TypeError, AttributeError, ArithmeticError) as e:
        return Error(ReceiptError(ReceiptErrorKind.CORRUPT, f"Stored receipt is unreadable: {e}", e))


# ═══════════════════════════════════════════════════════════════════════════════
# Store Protocol
# ═══════════════════════════════════════════════════════════════════════════════


class ReceiptStore(Protocol):
    """
    Single-slot receipt store. Last writer wins.

    Example — custom backend:

        class RedisReceiptStore:
            async def save(self, order: Order) -> Result[None, ReceiptError]:
                try:
                    await redis.set(RECEIPT_KEY, encode(order))
                    return Ok(None)
                except Exception as e:
                    return Error(ReceiptError(ReceiptErrorKind.BACKEND, str(e), e))

            # ... load, clear
    """

    async def save(self, order: Order) -> Result[None, ReceiptError]:
        """Overwrite the slot."""
        ...

    async def load(self) -> Result[Order | None, ReceiptError]:
        """Last saved order, or Ok(None) when the slot is empty."""
        ...

    async def clear(self) -> Result[bool, ReceiptError]:
        """Empty the slot. Returns Ok(True) if it held a receipt."""
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# Memory Store — For Testing
# ═══════════════════════════════════════════════════════════════════════════════


class MemoryReceiptStore:
    """
    In-memory receipt store.

    Note: stores the serialized form, so load() goes through the same
    decoding as the durable stores.
    """

    def __init__(self) -> None:
        self._payload: str | None = None

    async def save(self, order: Order) -> Result[None, ReceiptError]:
        self._payload = encode(order)
        return Ok(None)

    async def load(self) -> Result[Order | None, ReceiptError]:
        if self._payload is None:
            return Ok(None)
        return decode(self._payload)

    async def clear(self) -> Result[bool, ReceiptError]:
        existed = self._payload is not None
        self._payload = None
        return Ok(existed)


# ═══════════════════════════════════════════════════════════════════════════════
# File Store
# ═══════════════════════════════════════════════════════════════════════════════


class FileReceiptStore:
    """
    JSON document on disk: {"order_receipt": {...}}.

    Writes go to a temp file in the same directory and are moved into place,
    so a reader sees either the old document or the new one.

    Example:
        store = FileReceiptStore("~/.storefront/receipt.json")
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def _read_document(self) -> dict[str, Any] | None:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        document = json.loads(text)
        if not isinstance(document, dict):
            raise ValueError("receipt document is not an object")
        return document

    def _write_document(self, document: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".receipt-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, sort_keys=True)
            os.replace(tmp, self._path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _save_sync(self, order: Order) -> None:
        try:
            document = self._read_document() or {}
        except ValueError:
            # Corrupt document is overwritten
            document = {}
        document[RECEIPT_KEY] = order.to_json()
        self._write_document(document)

    def _clear_sync(self) -> bool:
        try:
            document = self._read_document()
        except ValueError:
            self._path.unlink(missing_ok=True)
            return True
        if document is None or RECEIPT_KEY not in document:
            return False
        del document[RECEIPT_KEY]
        if document:
            self._write_document(document)
        else:
            self._path.unlink(missing_ok=True)
        return True

    async def save(self, order: Order) -> Result[None, ReceiptError]:
        try:
            await asyncio.to_thread(self._save_sync, order)
        except OSError as e:
            return Error(ReceiptError(ReceiptErrorKind.IO, f"Failed to save receipt: {e}", e))
        log.info("receipt_saved", path=str(self._path), order_id=order.id)
        return Ok(None)

    async def load(self) -> Result[Order | None, ReceiptError]:
        try:
            document = await asyncio.to_thread(self._read_document)
        except OSError as e:
            return Error(ReceiptError(ReceiptErrorKind.IO, f"Failed to read receipt: {e}", e))
        except ValueError as e:
            return Error(ReceiptError(ReceiptErrorKind.CORRUPT, f"Receipt file is not valid JSON: {e}", e))
        if document is None or document.get(RECEIPT_KEY) is None:
            return Ok(None)
        return decode(document[RECEIPT_KEY])

    async def clear(self) -> Result[bool, ReceiptError]:
        try:
            existed = await asyncio.to_thread(self._clear_sync)
        except OSError as e:
            return Error(ReceiptError(ReceiptErrorKind.IO, f"Failed to clear receipt: {e}", e))
        log.info("receipt_cleared", path=str(self._path), existed=existed)
        return Ok(existed)


__all__ = (
    "RECEIPT_KEY",
    "ReceiptErrorKind",
    "ReceiptError",
    "ReceiptStore",
    "MemoryReceiptStore",
    "FileReceiptStore",
    "encode",
    "decode",
)
