"""
Shared error handling for the bundle pricing engine.
"""

from typing import Dict, Any, Optional
from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard error response format."""

    correlation_id: Optional[str] = None
    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class PricingEngineException(Exception):
    """Base exception for pricing services."""

    status_code: int = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self, correlation_id: Optional[str] = None) -> ErrorResponse:
        """Convert to error response."""
        return ErrorResponse(
            correlation_id=correlation_id,
            code=self.code,
            message=self.message,
            details=self.details
        )


class InvalidInput(PricingEngineException):
    """Malformed or missing required fact."""

    def __init__(self, message: str = "Invalid pricing input", details: Optional[Dict[str, Any]] = None):
        super().__init__("INVALID_INPUT", message, details)


class InvalidDuration(PricingEngineException):
    """Requested duration outside supported bounds."""

    def __init__(self, duration: int, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.duration = duration
        super().__init__(
            "INVALID_DURATION",
            message or f"Requested duration {duration} is not supported",
            {"duration": duration, **(details or {})}
        )


class NoBundlesAvailable(PricingEngineException):
    """Fact base has no candidate bundle to price."""

    def __init__(self, destination: str, details: Optional[Dict[str, Any]] = None):
        self.destination = destination
        super().__init__(
            "NO_BUNDLES_AVAILABLE",
            f"No bundles available for {destination}",
            {"destination": destination, **(details or {})}
        )


class NoRulesConfigured(PricingEngineException):
    """Strategy resolves to zero enabled bindings."""

    def __init__(self, strategy_code: str):
        self.strategy_code = strategy_code
        super().__init__(
            "NO_RULES_CONFIGURED",
            f"Strategy '{strategy_code}' has no enabled pricing blocks",
            {"strategy_code": strategy_code}
        )


class CalculationFailed(PricingEngineException):
    """A block produced an invalid price or failed to evaluate."""

    status_code = 422

    def __init__(self, message: str, rule_id: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.rule_id = rule_id
        payload = dict(details or {})
        if rule_id is not None:
            payload["rule_id"] = rule_id
        super().__init__("CALCULATION_FAILED", message, payload)


class StrategyNotFound(PricingEngineException):
    """No pricing strategy matches the requested code."""

    status_code = 404

    def __init__(self, code: str):
        self.strategy_code = code
        super().__init__(
            "STRATEGY_NOT_FOUND",
            f"Pricing strategy '{code}' not found",
            {"strategy_code": code}
        )


class InvalidBlockDefinition(PricingEngineException):
    """A stored block or binding cannot be turned into a rule."""

    def __init__(self, block_id: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.block_id = block_id
        super().__init__(
            "INVALID_BLOCK_DEFINITION",
            f"Block '{block_id}': {message}",
            {"block_id": block_id, **(details or {})}
        )
