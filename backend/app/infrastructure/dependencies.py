"""Dependency wiring — builds the infrastructure and hands it to the application layer."""

import logging

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from app.config import Settings, get_settings
from app.application.services import ProductRegistry, RecognitionPipeline
from app.domain.entities import Product
from app.infrastructure.database import create_engine, create_session_factory
from app.infrastructure.database.record_codec import RecordCodec, TimestampStyle
from app.infrastructure.database.repositories import SQLAlchemyDocumentStore
from app.infrastructure.recognition import HttpRecognizer

logger = logging.getLogger(__name__)


class ServiceContainer:
    """Long-lived services shared by every request.

    The engine, the product store and the recognizer's HTTP client are
    created once; ``aclose`` releases them on shutdown.
    """

    def __init__(self, settings: Settings | None = None, *, engine: AsyncEngine | None = None):
        self.settings = settings or get_settings()
        self.engine = engine or create_engine(self.settings.database_url)
        self.session_factory = create_session_factory(self.engine)

        codec = RecordCodec(
            Product,
            timestamp_style=TimestampStyle(self.settings.document_timestamp_style),
        )
        self.product_store = SQLAlchemyDocumentStore(
            self.session_factory,
            Product.collection,
            codec,
            unique_fields=("code",),
            timeout=self.settings.document_store_timeout_seconds,
        )
        self.product_registry = ProductRegistry(self.product_store)

        self._http_client = httpx.AsyncClient()
        self.recognizer = HttpRecognizer(
            classifier_url=self.settings.recognition_classifier_url,
            barcode_url=self.settings.recognition_barcode_url,
            barcode_timeout=self.settings.recognition_timeout_seconds,
            http_client=self._http_client,
        )
        self.recognition_pipeline = RecognitionPipeline(
            self.recognizer,
            self.product_registry,
            confidence_threshold=self.settings.recognition_confidence_threshold,
            classify_timeout=self.settings.recognition_timeout_seconds,
        )

    async def aclose(self) -> None:
        await self._http_client.aclose()
        await self.engine.dispose()
        logger.debug("Service container closed")
