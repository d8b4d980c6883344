"""Recognition pipeline — identifies a product from an uploaded image.

Stages run strictly in sequence; classification is the expensive remote
call and only runs when the barcode path did not resolve a product:

  1. Barcode scan        → catalog lookup by barcode_value
  2. Classification      → (label, confidence) from the remote classifier
  3. Confidence gate     → low-confidence labels become creation hints
  4. Catalog lookup      → exact name match, else a creation hint

The caller always receives a RecognitionOutcome; a missing catalog entry
is never reported as an error. Store failures propagate unchanged.
"""

import json
from collections.abc import Awaitable, Callable

from app.application.interfaces import Recognizer
from app.application.services.product_registry import ProductRegistry
from app.domain.entities import Failed, Matched, Product, RecognitionOutcome, Suggested
from app.domain.exceptions import EntityNotFoundError, RecognitionUnavailableError
from app.infrastructure.logging.colored_logger import PipelineLogger, PipelineStage

plog = PipelineLogger("RecognitionPipeline")

DEFAULT_CONFIDENCE_THRESHOLD = 0.5
DEFAULT_CLASSIFY_TIMEOUT = 15.0


class RecognitionPipeline:
    """Stateless orchestrator over a Recognizer and the product catalog.

    One instance is shared by all requests; every ``identify`` call is
    independent.
    """

    def __init__(
        self,
        recognizer: Recognizer,
        registry: ProductRegistry,
        *,
        confidence_threshold: float = DEFAULT_CONFIDENCE_THRESHOLD,
        classify_timeout: float = DEFAULT_CLASSIFY_TIMEOUT,
    ):
        self._recognizer = recognizer
        self._registry = registry
        self._confidence_threshold = confidence_threshold
        self._classify_timeout = classify_timeout

    async def identify(self, image: bytes) -> RecognitionOutcome:
        """Run barcode → classification → gate → lookup and return the outcome."""
        plog.step_start(PipelineStage.PIPELINE, "Identifying image", bytes=len(image))

        barcode = await self._scan_barcode(image)
        if barcode:
            product = await self._lookup(self._registry.find_by_barcode, barcode)
            if product is not None:
                return self._finish(Matched(product=product, barcode=barcode))
            plog.step_skip(PipelineStage.LOOKUP, "Barcode not in catalog", barcode=barcode)

        try:
            with plog.timed_step(PipelineStage.CLASSIFY, "Classifying image"):
                classification = await self._recognizer.classify(
                    image, timeout=self._classify_timeout
                )
        except RecognitionUnavailableError:
            return self._finish(Failed(reason="recognition unavailable", barcode=barcode))

        label = classification.label.strip()
        if not label:
            return self._finish(Failed(reason="recognition returned no label", barcode=barcode))

        if classification.confidence <= self._confidence_threshold:
            plog.step_skip(
                PipelineStage.GATE,
                "Confidence too low for lookup",
                label=label,
                confidence=classification.confidence,
            )
            return self._finish(
                Suggested(name=label, confidence=classification.confidence, barcode=barcode)
            )

        product = await self._lookup(self._registry.find_by_name, label)
        if product is not None:
            return self._finish(Matched(product=product, barcode=barcode))
        return self._finish(
            Suggested(name=label, confidence=classification.confidence, barcode=barcode)
        )

    async def identify_and_attach(self, code: str, image: bytes, image_url: str) -> RecognitionOutcome:
        """Identify the image and record the result on product ``code``.

        Stores the image URL, the barcode read from the image (empty when
        none) and the outcome payload as the product's recognition metadata.
        """
        await self._registry.get_by_code(code)
        outcome = await self.identify(image)
        await self._registry.update_image_metadata(
            code,
            image_url=image_url,
            barcode_value=outcome.barcode or "",
            recognition_metadata=json.dumps(outcome.to_payload()),
        )
        return outcome

    async def _scan_barcode(self, image: bytes) -> str | None:
        """Barcode path — recognizer failures fall through to classification."""
        plog.step_start(PipelineStage.BARCODE, "Scanning for barcode")
        try:
            value = await self._recognizer.scan_barcode(image)
        except RecognitionUnavailableError as exc:
            plog.step_error(PipelineStage.BARCODE, "Barcode scan unavailable", error=exc)
            return None

        barcode = (value or "").strip()
        if not barcode:
            plog.step_skip(PipelineStage.BARCODE, "No barcode found")
            return None
        plog.step_complete(PipelineStage.BARCODE, "Barcode decoded", barcode=barcode)
        return barcode

    async def _lookup(
        self, finder: Callable[[str], Awaitable[Product]], value: str
    ) -> Product | None:
        plog.step_start(PipelineStage.LOOKUP, "Catalog lookup", value=value)
        try:
            product = await finder(value)
        except EntityNotFoundError:
            return None
        plog.step_complete(PipelineStage.LOOKUP, "Catalog match", code=product.code)
        return product

    @staticmethod
    def _finish(outcome: RecognitionOutcome) -> RecognitionOutcome:
        if isinstance(outcome, Failed):
            plog.step_error(PipelineStage.ERROR, f"Recognition failed: {outcome.reason}")
        else:
            plog.step_complete(
                PipelineStage.COMPLETE, type(outcome).__name__, **outcome.to_payload()
            )
        return outcome
