# -*- coding: utf-8 -*-
"""Carbon Credit Engine Exception Hierarchy.

Every error the engine raises carries enough structured context (field
name, methodology code, expected range, record ids) to be rendered
directly in an API error response without string parsing.

Exception Hierarchy:
    CreditEngineError (base)
    ├── InvalidRequestError
    ├── UnsupportedMethodologyError
    ├── MethodologyValidationError
    ├── CalculationError
    ├── IllegalStateTransitionError
    ├── LedgerError
    │   └── CreditNotFoundError
    └── PartialRecalculationError

Example:
    >>> from carbon_credits.exceptions import InvalidRequestError
    >>> raise InvalidRequestError(
    ...     message="data_quality_score must be between 0 and 1",
    ...     field="data_quality_score",
    ...     expected="0 <= value <= 1",
    ... )

Author: GreenLang Platform Team
Status: Production Ready
"""

import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


# ==============================================================================
# Base Exception
# ==============================================================================

class CreditEngineError(Exception):
    """Base exception for all carbon credit engine errors.

    Attributes:
        message: Human-readable error message
        error_code: Unique error identifier (e.g., "CC_INVALID_REQUEST_ERROR")
        context: Dictionary with error-specific details
        timestamp: When the error occurred
    """

    ERROR_PREFIX = "CC"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception with rich context.

        Args:
            message: Human-readable error message
            error_code: Unique error identifier (auto-generated if not provided)
            context: Dictionary with error-specific details
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self._generate_error_code()
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def _generate_error_code(self) -> str:
        """Generate error code based on exception class.

        Returns:
            Error code like "CC_INVALID_REQUEST_ERROR"
        """
        class_name = self.__class__.__name__
        error_type = re.sub(r'(?<!^)(?=[A-Z])', '_', class_name).upper()
        return f"{self.ERROR_PREFIX}_{error_type}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization.

        Returns:
            Dictionary with all error details
        """
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_json(self) -> str:
        """Convert exception to JSON string."""
        return json.dumps(self.to_dict(), indent=2, default=str)

    def __str__(self) -> str:
        return f"[{self.error_code}] - {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}')"
        )


# ==============================================================================
# Request / Methodology Exceptions
# ==============================================================================

class InvalidRequestError(CreditEngineError):
    """Structural validation of a calculation request failed.

    Always recoverable by the caller correcting the input.

    Example:
        >>> raise InvalidRequestError(
        ...     message="project_id is required",
        ...     field="project_id",
        ... )
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        expected: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize invalid request error.

        Args:
            message: Error message
            field: Request field that failed validation
            expected: Description of the accepted values
            context: Error context
        """
        context = context or {}
        if field:
            context["field"] = field
        if expected:
            context["expected"] = expected
        self.field = field
        self.expected = expected
        super().__init__(message, context=context)


class UnsupportedMethodologyError(CreditEngineError):
    """The requested methodology code is not in the registry."""

    def __init__(
        self,
        methodology_code: str,
        supported: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        context["field"] = "methodology_code"
        context["methodology_code"] = methodology_code
        if supported:
            context["supported"] = list(supported)
        self.methodology_code = methodology_code
        self.supported = list(supported or [])
        super().__init__(
            f"unsupported methodology: {methodology_code}", context=context,
        )


class MethodologyValidationError(CreditEngineError):
    """Methodology-specific field or shape check failed.

    Example:
        >>> raise MethodologyValidationError(
        ...     message="forest_inventory is required for VM0007",
        ...     methodology_code="VM0007",
        ...     field="forest_inventory",
        ... )
    """

    def __init__(
        self,
        message: str,
        methodology_code: str,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Initialize methodology validation error.

        Args:
            message: Error message
            methodology_code: Methodology whose rules were violated
            field: Dotted path of the missing or invalid field
            context: Error context
        """
        context = context or {}
        context["methodology_code"] = methodology_code
        if field:
            context["field"] = field
        self.methodology_code = methodology_code
        self.field = field
        super().__init__(message, context=context)


class CalculationError(CreditEngineError):
    """An arithmetic precondition was violated during calculation.

    Distinct from the default-value policy for missing optional fields,
    which is not an error.
    """

    def __init__(
        self,
        message: str,
        methodology_code: str,
        step: Optional[str] = None,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        context["methodology_code"] = methodology_code
        if step:
            context["step"] = step
        if field:
            context["field"] = field
        self.methodology_code = methodology_code
        self.step = step
        self.field = field
        super().__init__(message, context=context)


# ==============================================================================
# Lifecycle / Ledger Exceptions
# ==============================================================================

class IllegalStateTransitionError(CreditEngineError):
    """A credit record was asked to move along an edge the lifecycle forbids."""

    def __init__(
        self,
        credit_id: str,
        current_status: str,
        target_status: str,
        allowed: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        context.update({
            "credit_id": credit_id,
            "current_status": current_status,
            "target_status": target_status,
            "allowed": sorted(allowed or []),
        })
        self.credit_id = credit_id
        self.current_status = current_status
        self.target_status = target_status
        super().__init__(
            f"credit {credit_id} cannot move from '{current_status}' "
            f"to '{target_status}'",
            context=context,
        )


class LedgerError(CreditEngineError):
    """The credit ledger failed to complete an operation.

    The engine never retries these; retry policy belongs to the caller.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        credit_id: Optional[str] = None,
        cause: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        context = context or {}
        if operation:
            context["operation"] = operation
        if credit_id:
            context["credit_id"] = credit_id
        if cause:
            context["cause"] = str(cause)
            context["cause_type"] = type(cause).__name__
        self.operation = operation
        self.credit_id = credit_id
        super().__init__(message, context=context)


class CreditNotFoundError(LedgerError):
    """No credit record exists for the given id."""

    def __init__(self, credit_id: str):
        super().__init__(
            f"credit not found: {credit_id}",
            operation="get_by_id",
            credit_id=credit_id,
        )


class PartialRecalculationError(CreditEngineError):
    """Recalculation wrote the new record but could not cancel the original.

    Both records are now active for the same project and vintage and
    must be reconciled manually by cancelling ``original_credit_id``.
    """

    def __init__(
        self,
        original_credit_id: str,
        new_credit_id: str,
        cause: Optional[Exception] = None,
    ):
        context: Dict[str, Any] = {
            "original_credit_id": original_credit_id,
            "new_credit_id": new_credit_id,
            "reconciliation": "cancel original_credit_id",
        }
        if cause:
            context["cause"] = str(cause)
            context["cause_type"] = type(cause).__name__
        self.original_credit_id = original_credit_id
        self.new_credit_id = new_credit_id
        super().__init__(
            f"recalculated credit {new_credit_id} was stored but original "
            f"credit {original_credit_id} could not be cancelled",
            context=context,
        )


# ==============================================================================
# Exception Utilities
# ==============================================================================

def format_exception_chain(exc: Exception) -> str:
    """Format exception chain for logging/display.

    Args:
        exc: Exception to format

    Returns:
        Formatted string with full exception chain
    """
    lines = []
    current: Optional[BaseException] = exc

    while current is not None:
        if isinstance(current, CreditEngineError):
            lines.append(str(current))
            lines.append(f"  Context: {current.context}")
        else:
            lines.append(f"{type(current).__name__}: {current}")
        current = getattr(current, "__cause__", None)

    return "\n".join(lines)


def is_retriable(exc: Exception) -> bool:
    """Check if an exception is worth retrying by the caller.

    Only ledger failures are transient; a missing record, invalid input,
    or illegal lifecycle transition will fail the same way again.

    Args:
        exc: Exception to check

    Returns:
        True if operation should be retried
    """
    if isinstance(exc, CreditNotFoundError):
        return False
    return isinstance(exc, LedgerError)
