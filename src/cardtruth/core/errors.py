"""Error codes and user-friendly messages.

This module defines the error catalog for statement ingestion and
card truth convergence. Each error has:
- code: Unique identifier
- message: Technical description (for logs)
- user_message: User-friendly explanation
- suggestion: Actionable guidance for the user
- retry_allowed: Whether the error is retryable
"""

# Error catalog for statement ingestion
ERROR_CATALOG: dict[str, dict] = {
    "FMT_001": {
        "code": "FMT_001",
        "message": "Unsupported file format",
        "user_message": "We couldn't recognize this file type.",
        "suggestion": "Upload a PDF, CSV, OFX/QFX, image, or paste the statement summary text.",
        "retry_allowed": False,
    },
    "EXT_001": {
        "code": "EXT_001",
        "message": "Text extraction failed: no text could be read from the file",
        "user_message": "We couldn't read any text from this file.",
        "suggestion": "Try downloading the statement again, or paste the summary instead.",
        "retry_allowed": True,
    },
    "EXT_002": {
        "code": "EXT_002",
        "message": "OCR engine unavailable for image-based content",
        "user_message": "This file looks like a scanned image and OCR is not available.",
        "suggestion": "Upload a text-based PDF or CSV/OFX export from your bank.",
        "retry_allowed": False,
    },
    "EXT_003": {
        "code": "EXT_003",
        "message": "Extracted text too short to contain a statement",
        "user_message": "We found too little text in this file to read a statement.",
        "suggestion": "Make sure the whole statement is included, or paste the summary instead.",
        "retry_allowed": True,
    },
    "EXT_004": {
        "code": "EXT_004",
        "message": "PDF is password-protected",
        "user_message": "This statement requires a password.",
        "suggestion": "Please provide the PDF password and try again.",
        "retry_allowed": True,
    },
    "EXT_005": {
        "code": "EXT_005",
        "message": "Incorrect password provided for encrypted PDF",
        "user_message": "The password you provided is incorrect.",
        "suggestion": "Check your password and try again.",
        "retry_allowed": True,
    },
    "VAL_001": {
        "code": "VAL_001",
        "message": "No critical statement fields could be extracted",
        "user_message": "We couldn't find the balance, minimum payment, or due date in this statement.",
        "suggestion": "Check that this is a credit card statement, or enter the values manually.",
        "retry_allowed": False,
    },
    "FEAT_001": {
        "code": "FEAT_001",
        "message": "Ingestion invoked while its feature flag is disabled",
        "user_message": "Statement import is currently turned off.",
        "suggestion": "Enable statement ingestion in the configuration and try again.",
        "retry_allowed": False,
    },
    "STORE_001": {
        "code": "STORE_001",
        "message": "Truth layer storage operation failed",
        "user_message": "We couldn't save your card data.",
        "suggestion": "Please try again in a few moments.",
        "retry_allowed": True,
    },
    "CARD_001": {
        "code": "CARD_001",
        "message": "No merged truth found for card",
        "user_message": "We don't have any statement data for this card yet.",
        "suggestion": "Paste a statement summary or upload a statement first.",
        "retry_allowed": False,
    },
    # API-specific errors
    "API_001": {
        "code": "API_001",
        "message": "Empty upload body",
        "user_message": "The uploaded file is empty.",
        "suggestion": "Please choose a statement file and try again.",
        "retry_allowed": False,
    },
    "API_002": {
        "code": "API_002",
        "message": "File size exceeds maximum limit",
        "user_message": "The file is too large.",
        "suggestion": "Please upload a smaller statement file.",
        "retry_allowed": False,
    },
    "API_003": {
        "code": "API_003",
        "message": "Request validation failed",
        "user_message": "Invalid input data",
        "suggestion": "Please check your input and try again",
        "retry_allowed": True,
    },
}


def get_error(error_code: str) -> dict:
    """Get error definition by code.

    Args:
        error_code: Error code from the catalog

    Returns:
        Dict with error details (a generic entry for unknown codes)
    """
    if error_code not in ERROR_CATALOG:
        return {
            "code": "UNKNOWN",
            "message": f"Unknown error code: {error_code}",
            "user_message": "An unexpected error occurred.",
            "suggestion": "Please try again. Contact support if the problem persists.",
            "retry_allowed": True,
        }
    return ERROR_CATALOG[error_code]


def get_user_message(error_code: str) -> str:
    """Get user-friendly message for an error code."""
    return get_error(error_code)["user_message"]


def get_suggestion(error_code: str) -> str:
    """Get actionable suggestion for an error code."""
    return get_error(error_code)["suggestion"]


def is_retryable(error_code: str) -> bool:
    """Check if an error is retryable.

    Args:
        error_code: Error code from the catalog

    Returns:
        True if the operation can be retried, False otherwise
    """
    return get_error(error_code)["retry_allowed"]
