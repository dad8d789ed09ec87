"""
Receipt — durable copy of the last captured order.

    from storefront import receipt as R

    store = R.FileReceiptStore("~/.storefront/receipt.json")
    await store.save(order)
    restored = await store.load()      # Ok(Order) | Ok(None) | Error(ReceiptError)
"""

from __future__ import annotations

from storefront.receipt._store import (
    RECEIPT_KEY,
    ReceiptErrorKind,
    ReceiptError,
    ReceiptStore,
    MemoryReceiptStore,
    FileReceiptStore,
)
from storefront.receipt._sqlalchemy import (
    ReceiptTable,
    create_receipt_database,
    SQLAlchemyReceiptStore,
)

__all__ = (
    "RECEIPT_KEY",
    "ReceiptErrorKind",
    "ReceiptError",
    "ReceiptStore",
    "MemoryReceiptStore",
    "FileReceiptStore",
    "ReceiptTable",
    "create_receipt_database",
    "SQLAlchemyReceiptStore",
)
