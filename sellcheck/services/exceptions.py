"""
Custom Exception Hierarchy for SellCheck

This module provides a structured exception hierarchy for error handling
across the market-signal pipeline.

Usage:
    from sellcheck.services.exceptions import (
        SellCheckError,
        SourceUnavailableError,
        CredentialError,
    )

    try:
        outcome = await orchestrator.get_signal(query)
    except SourceUnavailableError as e:
        logger.error(f"Search failed: {e}")
"""

from typing import Optional, Dict, Any


class SellCheckError(Exception):
    """
    Base exception for all SellCheck errors.

    All custom exceptions inherit from this class to enable
    unified error handling throughout the application.
    """

    def __init__(
        self,
        message: str,
        code: str = "SELLCHECK_ERROR",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error": self.code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        if self.cause:
            return f"{self.message} (caused by: {self.cause})"
        return self.message


# ============================================================
# External Service Errors
# ============================================================

class ExternalServiceError(SellCheckError):
    """Base class for external service errors."""

    def __init__(
        self,
        service: str,
        message: str,
        code: str = "EXTERNAL_SERVICE_ERROR",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        details["service"] = service
        super().__init__(message, code, details, cause)


class EbayAPIError(ExternalServiceError):
    """Error communicating with the eBay Browse API."""

    def __init__(
        self,
        message: str = "eBay API request failed",
        status_code: Optional[int] = None,
        cause: Optional[Exception] = None,
    ):
        details = {}
        if status_code:
            details["status_code"] = status_code
        super().__init__(
            service="ebay",
            message=message,
            code="EBAY_API_ERROR",
            details=details,
            cause=cause,
        )
        self.status_code = status_code


class CredentialError(ExternalServiceError):
    """OAuth token endpoint unreachable or credentials rejected."""

    def __init__(
        self,
        message: str = "Could not obtain eBay OAuth token",
        status_code: Optional[int] = None,
        cause: Optional[Exception] = None,
    ):
        details = {}
        if status_code:
            details["status_code"] = status_code
        super().__init__(
            service="ebay_oauth",
            message=message,
            code="CREDENTIAL_ERROR",
            details=details,
            cause=cause,
        )


class ScrapeError(ExternalServiceError):
    """Sold-listings page could not be fetched or parsed."""

    def __init__(
        self,
        reason: str,
        code: str = "SCRAPE_ERROR",
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            service="ebay_web",
            message=f"Sold listings scrape failed: {reason}",
            code=code,
            details={"reason": reason},
            cause=cause,
        )
        self.reason = reason


class BotChallengeError(ScrapeError):
    """Scrape target answered with an automated-traffic challenge."""

    def __init__(self, marker: str):
        super().__init__(reason="bot_challenge", code="BOT_CHALLENGE")
        self.details["marker"] = marker


# ============================================================
# Pipeline Errors
# ============================================================

class SourceUnavailableError(SellCheckError):
    """No active-listing data could be obtained for the query."""

    def __init__(
        self,
        query: str,
        cause: Optional[Exception] = None,
    ):
        details = {"query": query}
        if isinstance(cause, SellCheckError):
            details["source_error"] = cause.code
        super().__init__(
            message="Marketplace data is temporarily unavailable",
            code="SOURCE_UNAVAILABLE",
            details=details,
            cause=cause,
        )


# ============================================================
# Cache Errors
# ============================================================

class CacheError(SellCheckError):
    """Cache store unreachable or failed."""

    def __init__(
        self,
        message: str,
        code: str = "CACHE_ERROR",
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, code, cause=cause)


# ============================================================
# Validation Errors
# ============================================================

class ValidationError(SellCheckError):
    """Base class for validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        code: str = "VALIDATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, code, details, cause)


class InvalidQueryError(ValidationError):
    """Search query is missing or too short."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Invalid query: {reason}",
            field="q",
            code="INVALID_QUERY",
        )


# ============================================================
# Rate Limiting Errors
# ============================================================

class RateLimitError(SellCheckError):
    """Rate limit exceeded."""

    def __init__(
        self,
        service: str,
        retry_after: Optional[int] = None,
    ):
        details = {"service": service}
        if retry_after:
            details["retry_after_seconds"] = retry_after
        super().__init__(
            message=f"Rate limit exceeded for {service}",
            code="RATE_LIMIT_EXCEEDED",
            details=details,
        )


# ============================================================
# Configuration / Auth Errors
# ============================================================

class ConfigurationError(SellCheckError):
    """Configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details=details,
        )


class UnauthorizedError(SellCheckError):
    """Admin endpoint called without a valid secret."""

    def __init__(self):
        super().__init__(message="Unauthorized", code="UNAUTHORIZED")
