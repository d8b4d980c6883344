"""Abstract interface (port) for image-based product recognition."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class Classification:
    """Label and confidence returned by the remote classifier."""

    label: str
    confidence: float  # 0.0 – 1.0

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be within [0, 1], got {self.confidence}")


class Recognizer(ABC):
    """Port for barcode decoding and image classification."""

    @abstractmethod
    async def scan_barcode(self, image: bytes) -> str | None:
        """Decode a barcode from the image, or return None when there is none."""
        ...

    @abstractmethod
    async def classify(self, image: bytes, *, timeout: float) -> Classification:
        """Classify the image within ``timeout`` seconds.

        Raises RecognitionUnavailableError when the classifier cannot answer.
        """
        ...
