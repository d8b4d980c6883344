from .http_recognizer import HttpRecognizer

__all__ = ["HttpRecognizer"]
