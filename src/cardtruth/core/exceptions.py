"""Custom exception classes for statement ingestion.

Each exception maps to a code in ``errors.py``. Extraction-stage errors
abort the pipeline; post-extraction quality problems are recorded as
warnings on the result instead of being raised.
"""

from typing import Any


class StatementProcessingError(Exception):
    """Base exception for all ingestion and convergence errors.

    Attributes:
        error_code: Code from the error catalog (e.g., "EXT_001")
        details: Additional context about the error (for logging)
        http_status: HTTP status code to return (default: 500)
    """

    def __init__(
        self,
        error_code: str,
        details: dict[str, Any] | None = None,
        http_status: int = 500,
    ):
        """Initialize the exception.

        Args:
            error_code: Error code from errors.py
            details: Additional error context (not shown to users)
            http_status: HTTP status code (default: 500)
        """
        self.error_code = error_code
        self.details = details or {}
        self.http_status = http_status
        super().__init__(error_code)


class UnsupportedFormatError(StatementProcessingError):
    """Raised when no extractor handles the file type (FMT_001)."""

    def __init__(self, error_code: str = "FMT_001", details: dict[str, Any] | None = None, http_status: int = 415):
        super().__init__(error_code, details, http_status)


class ExtractionError(StatementProcessingError):
    """Raised when text cannot be extracted.

    Common causes:
    - Nothing readable in the file (EXT_001)
    - Scanned content without an OCR engine (EXT_002)
    - Too little text for a statement (EXT_003)
    - Password-protected PDF (EXT_004 / EXT_005)
    """

    def __init__(self, error_code: str = "EXT_001", details: dict[str, Any] | None = None, http_status: int = 422):
        super().__init__(error_code, details, http_status)


class ValidationError(StatementProcessingError):
    """Raised when every critical field is absent after extraction (VAL_001)."""

    def __init__(self, error_code: str = "VAL_001", details: dict[str, Any] | None = None, http_status: int = 422):
        super().__init__(error_code, details, http_status)


class FeatureDisabledError(StatementProcessingError):
    """Raised when an ingestion path runs while its feature flag is off (FEAT_001)."""

    def __init__(self, error_code: str = "FEAT_001", details: dict[str, Any] | None = None, http_status: int = 403):
        super().__init__(error_code, details, http_status)


class LayerStorageError(StatementProcessingError):
    """Raised when the truth layer store fails to read or write (STORE_001)."""

    def __init__(self, error_code: str = "STORE_001", details: dict[str, Any] | None = None, http_status: int = 500):
        super().__init__(error_code, details, http_status)


class CardNotFoundError(StatementProcessingError):
    """Raised when a card has no merged truth yet (CARD_001)."""

    def __init__(self, error_code: str = "CARD_001", details: dict[str, Any] | None = None, http_status: int = 404):
        super().__init__(error_code, details, http_status)
