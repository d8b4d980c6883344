"""Shared fixtures — an in-memory SQLite document store per test."""

import uuid

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.application.services import ProductRegistry
from app.domain.entities import Product
from app.infrastructure.database import (
    DocumentModel,
    create_engine,
    create_session_factory,
    create_tables,
)
from app.infrastructure.database.record_codec import RecordCodec
from app.infrastructure.database.repositories import SQLAlchemyDocumentStore


@pytest_asyncio.fixture
async def engine():
    engine = create_engine("sqlite:///:memory:", poolclass=StaticPool)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest_asyncio.fixture
async def product_store(session_factory) -> SQLAlchemyDocumentStore[Product]:
    return SQLAlchemyDocumentStore(
        session_factory,
        Product.collection,
        RecordCodec(Product),
        unique_fields=("code",),
    )


@pytest_asyncio.fixture
async def registry(product_store) -> ProductRegistry:
    return ProductRegistry(product_store)


@pytest.fixture
def insert_raw(session_factory):
    """Write documents directly, bypassing the codec (simulates other writers)."""

    async def _insert(data: dict, collection: str = "products") -> str:
        doc_id = str(uuid.uuid4())
        async with session_factory() as session, session.begin():
            session.add(DocumentModel(id=doc_id, collection=collection, data=data))
        return doc_id

    return _insert
