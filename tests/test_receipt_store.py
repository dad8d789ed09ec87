"""Receipt stores: memory, JSON file and SQLAlchemy."""

import json
from dataclasses import replace
from datetime import datetime

import pytest
from kungfu import Ok, Error

from storefront.receipt import (
    RECEIPT_KEY,
    FileReceiptStore,
    ReceiptTable,
    MemoryReceiptStore,
    ReceiptErrorKind,
    SQLAlchemyReceiptStore,
    create_receipt_database,
)
from storefront.receipt._sqlalchemy import Base


@pytest.fixture(params=["memory", "file", "sqlalchemy"])
async def store(request, tmp_path):
    match request.param:
        case "memory":
            yield MemoryReceiptStore()
        case "file":
            yield FileReceiptStore(tmp_path / "receipt.json")
        case "sqlalchemy":
            session_factory, engine = await create_receipt_database(
                f"sqlite+aiosqlite:///{tmp_path / 'receipts.db'}"
            )
            yield SQLAlchemyReceiptStore(session_factory)
            await engine.dispose()


class TestReceiptStore:
    async def test_empty_slot(self, store):
        assert await store.load() == Ok(None)

    async def test_save_then_load(self, store, order):
        assert isinstance(await store.save(order), Ok)

        restored = (await store.load()).unwrap()

        assert restored == order
        assert restored.order_value.formatted_with_symbol == "$25.00"

    async def test_load_is_repeatable(self, store, order):
        await store.save(order)

        first = (await store.load()).unwrap()
        second = (await store.load()).unwrap()

        assert first == second == order

    async def test_last_write_wins(self, store, order):
        newer = replace(order, id="ord_43", customer_reference="SANDBOX-000043")
        await store.save(order)
        await store.save(newer)

        assert (await store.load()).unwrap() == newer

    async def test_clear(self, store, order):
        await store.save(order)

        assert await store.clear() == Ok(True)
        assert await store.load() == Ok(None)
        assert await store.clear() == Ok(False)


class TestFileReceiptStore:
    async def test_document_layout(self, tmp_path, order):
        path = tmp_path / "receipt.json"

        await FileReceiptStore(path).save(order)

        document = json.loads(path.read_text())
        assert list(document) == [RECEIPT_KEY]
        assert document[RECEIPT_KEY]["id"] == "ord_42"

    async def test_no_temp_files_left(self, tmp_path, order):
        await FileReceiptStore(tmp_path / "receipt.json").save(order)

        assert [p.name for p in tmp_path.iterdir()] == ["receipt.json"]

    async def test_creates_parent_directory(self, tmp_path, order):
        store = FileReceiptStore(tmp_path / "nested" / "dir" / "receipt.json")

        assert isinstance(await store.save(order), Ok)
        assert (await store.load()).unwrap() == order

    async def test_corrupt_file_is_reported_not_removed(self, tmp_path):
        path = tmp_path / "receipt.json"
        path.write_text("{not json")

        result = await FileReceiptStore(path).load()

        assert isinstance(result, Error)
        assert result.error.kind is ReceiptErrorKind.CORRUPT
        assert path.read_text() == "{not json"

    async def test_unreadable_receipt_is_corrupt(self, tmp_path):
        path = tmp_path / "receipt.json"
        path.write_text(json.dumps({RECEIPT_KEY: {"customer_reference": "no id"}}))

        result = await FileReceiptStore(path).load()

        assert isinstance(result, Error)
        assert result.error.kind is ReceiptErrorKind.CORRUPT

    async def test_save_replaces_corrupt_file(self, tmp_path, order):
        path = tmp_path / "receipt.json"
        path.write_text("garbage")
        store = FileReceiptStore(path)

        await store.save(order)

        assert (await store.load()).unwrap() == order

    async def test_clear_keeps_other_keys(self, tmp_path, order):
        path = tmp_path / "receipt.json"
        store = FileReceiptStore(path)
        await store.save(order)
        document = json.loads(path.read_text())
        document["other"] = 1
        path.write_text(json.dumps(document))

        await store.clear()

        assert json.loads(path.read_text()) == {"other": 1}

    async def test_clear_removes_empty_file(self, tmp_path, order):
        path = tmp_path / "receipt.json"
        store = FileReceiptStore(path)
        await store.save(order)

        await store.clear()

        assert not path.exists()


class TestSQLAlchemyReceiptStore:
    async def test_backend_failure(self, order):
        session_factory, engine = await create_receipt_database()
        store = SQLAlchemyReceiptStore(session_factory)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

        result = await store.save(order)

        assert isinstance(result, Error)
        assert result.error.kind is ReceiptErrorKind.BACKEND
        await engine.dispose()

    async def test_corrupt_row(self, tmp_path):
        session_factory, engine = await create_receipt_database(
            f"sqlite+aiosqlite:///{tmp_path / 'receipts.db'}"
        )
        async with session_factory() as session:
            session.add(
                ReceiptTable(key=RECEIPT_KEY, order_id="x", payload="{oops", saved_at=datetime.now())
            )
            await session.commit()

        result = await SQLAlchemyReceiptStore(session_factory).load()

        assert isinstance(result, Error)
        assert result.error.kind is ReceiptErrorKind.CORRUPT
        await engine.dispose()
