"""Unit tests for the SQLAlchemyDocumentStore (in-memory SQLite)."""

import asyncio

import pytest
from sqlalchemy import select

from app.application.interfaces import DocumentQuery
from app.domain.entities import EPOCH, Product
from app.domain.exceptions import (
    DecodeError,
    DuplicateEntityError,
    EntityNotFoundError,
    StoreUnavailableError,
)
from app.infrastructure.database import DocumentModel
from app.infrastructure.database.record_codec import RecordCodec
from app.infrastructure.database.repositories import SQLAlchemyDocumentStore


# ── Helpers ──


class _HangingSession:
    async def __aenter__(self):
        await asyncio.sleep(5)

    async def __aexit__(self, *exc_info):
        return False


def _refusing_factory():
    raise ConnectionRefusedError("database host refused the connection")


async def _raw_data(session_factory, doc_id: str) -> dict:
    async with session_factory() as session:
        result = await session.execute(select(DocumentModel.data).where(DocumentModel.id == doc_id))
        return result.scalar_one()


# ── Create / get ──


@pytest.mark.asyncio
async def test_create_assigns_id_and_timestamps(product_store):
    product_id = await product_store.create(Product(code="A1", name="Coffee", purchase_price=4.2))

    product = await product_store.get(product_id)

    assert product.id == product_id
    assert product.code == "A1"
    assert product.purchase_price == 4.2
    assert product.created_at > EPOCH
    assert product.created_at == product.updated_at


@pytest.mark.asyncio
async def test_create_ignores_caller_supplied_id(product_store):
    product_id = await product_store.create(Product(id="chosen-by-caller", code="A1"))

    assert product_id != "chosen-by-caller"
    with pytest.raises(EntityNotFoundError):
        await product_store.get("chosen-by-caller")


@pytest.mark.asyncio
async def test_get_missing_raises_not_found(product_store):
    with pytest.raises(EntityNotFoundError) as exc_info:
        await product_store.get("does-not-exist")

    assert exc_info.value.entity_type == "Product"
    assert exc_info.value.entity_id == "does-not-exist"


@pytest.mark.asyncio
async def test_collections_are_isolated(product_store, session_factory):
    await product_store.create(Product(code="A1"))
    other = SQLAlchemyDocumentStore(session_factory, "archive", RecordCodec(Product))

    assert await other.list() == []


# ── Update ──


@pytest.mark.asyncio
async def test_update_changes_only_given_fields(product_store):
    product_id = await product_store.create(
        Product(code="A1", name="Coffee", purchase_price=4.0, sale_price=6.0)
    )
    before = await product_store.get(product_id)

    updated = await product_store.update(product_id, {"sale_price": 7.5})

    assert updated.sale_price == 7.5
    assert updated.name == "Coffee"
    assert updated.purchase_price == 4.0
    assert updated.created_at == before.created_at
    assert updated.updated_at >= before.updated_at
    assert await product_store.get(product_id) == updated


@pytest.mark.asyncio
async def test_update_preserves_fields_written_by_other_clients(
    product_store, session_factory, insert_raw
):
    doc_id = await insert_raw(
        {"code": "A1", "name": "Coffee", "supplier_note": "ships monday"}
    )

    updated = await product_store.update(doc_id, {"name": "Coffee 1kg"})

    assert updated.extra == {"supplier_note": "ships monday"}
    raw = await _raw_data(session_factory, doc_id)
    assert raw["supplier_note"] == "ships monday"
    assert raw["name"] == "Coffee 1kg"


@pytest.mark.asyncio
async def test_update_rejects_store_managed_fields(product_store):
    product_id = await product_store.create(Product(code="A1"))

    with pytest.raises(ValueError):
        await product_store.update(product_id, {"created_at": EPOCH})
    with pytest.raises(ValueError):
        await product_store.update(product_id, {"id": "other"})


@pytest.mark.asyncio
async def test_update_missing_raises_not_found(product_store):
    with pytest.raises(EntityNotFoundError):
        await product_store.update("does-not-exist", {"name": "x"})


@pytest.mark.asyncio
async def test_update_rejects_invalid_value_without_writing(product_store):
    product_id = await product_store.create(Product(code="A1", purchase_price=4.0))

    with pytest.raises(ValueError):
        await product_store.update(product_id, {"purchase_price": "cheap"})

    assert (await product_store.get(product_id)).purchase_price == 4.0


# ── Delete / list ──


@pytest.mark.asyncio
async def test_delete_is_idempotent(product_store):
    product_id = await product_store.create(Product(code="A1"))

    await product_store.delete(product_id)
    await product_store.delete(product_id)

    with pytest.raises(EntityNotFoundError):
        await product_store.get(product_id)


@pytest.mark.asyncio
async def test_delete_releases_unique_value(product_store):
    product_id = await product_store.create(Product(code="A1"))
    await product_store.delete(product_id)

    assert await product_store.create(Product(code="A1"))


@pytest.mark.asyncio
async def test_list_returns_insertion_order(product_store):
    for code in ("C", "A", "B"):
        await product_store.create(Product(code=code))

    assert [p.code for p in await product_store.list()] == ["C", "A", "B"]


# ── Query ──


@pytest.mark.asyncio
async def test_query_filters_orders_and_limits(product_store):
    for code, price in (("A", 5.0), ("B", 12.0), ("C", 20.0), ("D", 15.0)):
        await product_store.create(Product(code=code, sale_price=price))

    query = DocumentQuery().where("sale_price", ">", 10).ordered_by("sale_price", descending=True)

    assert [p.code for p in await product_store.query(query)] == ["C", "D", "B"]
    assert [p.code for p in await product_store.query(query.limited(2))] == ["C", "D"]


@pytest.mark.asyncio
async def test_query_conjunction_of_filters(product_store):
    await product_store.create(Product(code="A", company_id="c1", sale_price=5.0))
    await product_store.create(Product(code="B", company_id="c1", sale_price=15.0))
    await product_store.create(Product(code="C", company_id="c2", sale_price=15.0))

    query = DocumentQuery().where("company_id", "==", "c1").where("sale_price", ">=", 10)

    assert [p.code for p in await product_store.query(query)] == ["B"]


@pytest.mark.asyncio
async def test_query_without_order_keeps_insertion_order(product_store):
    for code in ("Z", "Y", "X"):
        await product_store.create(Product(code=code, barcode_value="123"))

    matches = await product_store.query(DocumentQuery().where("barcode_value", "==", "123"))

    assert [p.code for p in matches] == ["Z", "Y", "X"]


@pytest.mark.asyncio
async def test_query_compares_coerced_values(product_store, insert_raw):
    await insert_raw({"code": "A", "sale_price": "12.5"})
    await insert_raw({"code": 1001, "sale_price": 8})
    await insert_raw({"code": "C"})

    expensive = await product_store.query(DocumentQuery().where("sale_price", ">", "10"))
    by_numeric_code = await product_store.query(DocumentQuery().where("code", "==", 1001))

    assert [p.code for p in expensive] == ["A"]
    assert [p.code for p in by_numeric_code] == ["1001"]


@pytest.mark.asyncio
async def test_query_rejects_uncoercible_filter_value(product_store):
    with pytest.raises(ValueError):
        await product_store.query(DocumentQuery().where("sale_price", ">", "lots"))


@pytest.mark.asyncio
async def test_list_surfaces_corrupt_documents(product_store, insert_raw):
    await insert_raw({"code": "A", "sale_price": {"amount": 3}})

    with pytest.raises(DecodeError) as exc_info:
        await product_store.list()

    assert exc_info.value.field == "sale_price"


@pytest.mark.asyncio
async def test_query_surfaces_corrupt_document_it_returns(product_store, insert_raw):
    await insert_raw({"code": "BAD", "sale_price": "n/a"})

    with pytest.raises(DecodeError) as exc_info:
        await product_store.query(DocumentQuery().where("code", "==", "BAD"))

    assert exc_info.value.field == "sale_price"


@pytest.mark.asyncio
async def test_query_ignores_corrupt_siblings(product_store, insert_raw):
    await insert_raw({"code": "BAD", "sale_price": "n/a", "purchase_price": "n/a"})
    await product_store.create(Product(code="GOOD", sale_price=12.0, purchase_price=3.0))

    by_code = await product_store.query(DocumentQuery().where("code", "==", "GOOD"))
    by_price = await product_store.query(DocumentQuery().where("sale_price", ">", 10))
    ordered = await product_store.query(
        DocumentQuery().where("code", "==", "GOOD").ordered_by("purchase_price")
    )

    assert [p.code for p in by_code] == ["GOOD"]
    assert [p.code for p in by_price] == ["GOOD"]
    assert [p.code for p in ordered] == ["GOOD"]


@pytest.mark.asyncio
async def test_query_decodes_only_returned_documents(session_factory):
    decoded: list[str] = []

    class CountingCodec(RecordCodec):
        def decode(self, data, record_id=None):
            decoded.append(record_id)
            return super().decode(data, record_id=record_id)

    store = SQLAlchemyDocumentStore(session_factory, "products", CountingCodec(Product))
    for code in ("A", "B", "C", "D"):
        await store.create(Product(code=code))

    matches = await store.query(DocumentQuery().where("code", ">=", "B").limited(2))

    assert [p.code for p in matches] == ["B", "C"]
    assert decoded == [p.id for p in matches]


@pytest.mark.asyncio
async def test_query_limit_applies_after_exact_check(product_store, insert_raw):
    await insert_raw({"code": "A", "sale_price": "not a price"})
    await insert_raw({"code": "B", "sale_price": "15"})
    await product_store.create(Product(code="C", sale_price=30.0))

    matches = await product_store.query(DocumentQuery().where("sale_price", ">", 10).limited(1))

    assert [p.code for p in matches] == ["B"]


@pytest.mark.asyncio
async def test_query_filters_by_document_id(product_store):
    await product_store.create(Product(code="A"))
    product_id = await product_store.create(Product(code="B"))

    matches = await product_store.query(DocumentQuery().where("id", "==", product_id))

    assert [p.code for p in matches] == ["B"]


def test_query_rejects_unknown_operator():
    with pytest.raises(ValueError):
        DocumentQuery().where("code", "~=", "A")


def test_query_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        DocumentQuery().limited(0)


# ── Uniqueness ──


@pytest.mark.asyncio
async def test_unique_field_rejects_second_writer(product_store):
    await product_store.create(Product(code="A1", name="first"))

    with pytest.raises(DuplicateEntityError) as exc_info:
        await product_store.create(Product(code="A1", name="second"))

    assert exc_info.value.field == "code"
    assert [p.name for p in await product_store.list()] == ["first"]


@pytest.mark.asyncio
async def test_update_to_taken_unique_value_is_rejected(product_store):
    await product_store.create(Product(code="A1"))
    second_id = await product_store.create(Product(code="B2"))

    with pytest.raises(DuplicateEntityError):
        await product_store.update(second_id, {"code": "A1"})

    assert (await product_store.get(second_id)).code == "B2"


# ── Availability ──


@pytest.mark.asyncio
async def test_connection_failure_raises_store_unavailable():
    store = SQLAlchemyDocumentStore(_refusing_factory, "products", RecordCodec(Product))

    with pytest.raises(StoreUnavailableError) as exc_info:
        await store.get("any")

    assert exc_info.value.retryable is True
    assert exc_info.value.operation == "get"
    assert exc_info.value.collection == "products"


@pytest.mark.asyncio
async def test_deadline_raises_store_unavailable():
    store = SQLAlchemyDocumentStore(
        lambda: _HangingSession(), "products", RecordCodec(Product), timeout=0.05
    )

    with pytest.raises(StoreUnavailableError):
        await store.list()
