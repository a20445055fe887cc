"""Error kinds surfaced by the scraping pipeline."""

from typing import Optional


class ScraperError(Exception):
    """Base error carrying an API error code and HTTP status."""

    code = "INTERNAL"
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class ScrapeTimeoutError(ScraperError):
    """Raised when a page navigation exceeds its timeout."""

    code = "TIMEOUT"
    status_code = 504


class NotFoundError(ScraperError):
    """Raised when no card can be extracted or a card id is unknown."""

    code = "NOT_FOUND"
    status_code = 404


class ValidationError(ScraperError):
    """Raised for malformed requests and wrong-domain URLs."""

    code = "VALIDATION_ERROR"
    status_code = 400


class AuthError(ScraperError):
    """Raised when the API key is missing (401) or invalid (403)."""

    code = "AUTH_ERROR"
    status_code = 401


class ExtractionError(ScraperError):
    """Raised when the browser or page fails for a reason other than a timeout."""

    code = "INTERNAL"
    status_code = 500


class BrowserUnavailableError(ScraperError):
    """Raised when the headless browser cannot be launched."""

    code = "INTERNAL"
    status_code = 503


class StorageError(ScraperError):
    """Raised when the catalog database rejects a write."""

    code = "INTERNAL"
    status_code = 500
