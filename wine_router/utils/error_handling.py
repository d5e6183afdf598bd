"""Error types, classification and circuit breaking for the wine question router."""

import asyncio
import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    RETRIEVAL = "retrieval"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    SCHEMA = "schema"
    STORAGE = "storage"
    TRAINING = "training"
    CONFIGURATION = "configuration"
    INTERNAL = "internal"


@dataclass
class ErrorContext:
    """Where an error happened: component, operation and the model kind or question involved."""
    component: str
    operation: str
    kind: Optional[str] = None
    question: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)
    additional_data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "component": self.component,
            "operation": self.operation,
            "kind": self.kind,
            "question": self.question,
            "timestamp": self.timestamp.isoformat(),
            "additional_data": self.additional_data,
        }


@dataclass
class ErrorResponse:
    """Classified error as reported to logs, metrics and API clients."""
    error_code: str
    message: str
    severity: ErrorSeverity
    category: ErrorCategory
    context: ErrorContext
    timestamp: datetime = field(default_factory=datetime.now)
    suggestions: List[str] = field(default_factory=list)
    details: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "timestamp": self.timestamp.isoformat(),
            "suggestions": list(self.suggestions),
            "context": self.context.to_dict(),
            "details": self.details,
        }


class WineRouterError(Exception):
    """Base exception for wine question router errors."""

    def __init__(self, message: str, error_response: Optional[ErrorResponse] = None):
        super().__init__(message)
        self.message = message
        self.error_response = error_response


class InsufficientTrainingDataError(WineRouterError):
    """A model kind has too few valid labeled examples to train on."""

    def __init__(self, kind: str, available: int, required: int):
        super().__init__(
            f"Insufficient training data for {kind}: {available} examples, need at least {required}"
        )
        self.kind = kind
        self.available = available
        self.required = required


class ModelSchemaMismatchError(WineRouterError):
    """Stored weights do not fit the running feature schema."""


class ModelStoreError(WineRouterError):
    """A model artifact or the active-version map cannot be read or written."""


class RetrievalError(WineRouterError):
    """The passage retrieval dependency failed."""


class CircuitBreakerError(WineRouterError):
    """The guarded dependency is not being called while its breaker is open."""


# Checked in order; the first matching rule wins.
_FIXED_CODES: Tuple[Tuple[Type[Exception], str, ErrorCategory, ErrorSeverity], ...] = (
    (CircuitBreakerError, "CIRCUIT_BREAKER_OPEN", ErrorCategory.RETRIEVAL, ErrorSeverity.MEDIUM),
    (InsufficientTrainingDataError, "INSUFFICIENT_TRAINING_DATA", ErrorCategory.TRAINING, ErrorSeverity.LOW),
    (ModelSchemaMismatchError, "MODEL_SCHEMA_MISMATCH", ErrorCategory.SCHEMA, ErrorSeverity.HIGH),
    (ModelStoreError, "MODEL_STORE_FAILURE", ErrorCategory.STORAGE, ErrorSeverity.HIGH),
)

_SUGGESTIONS: Dict[ErrorCategory, Tuple[str, ...]] = {
    ErrorCategory.RETRIEVAL: (
        "Check that the passage retrieval service is reachable",
        "Answers fall back to structured knowledge until retrieval recovers",
    ),
    ErrorCategory.TIMEOUT: (
        "Increase retrieval.timeout",
        "Check retrieval service response times",
    ),
    ErrorCategory.VALIDATION: ("Check input data format and values",),
    ErrorCategory.SCHEMA: (
        "Retrain the model against the current feature schema",
        "Set model.schema_mode to 'compatible' to zero-fill during a rollout",
    ),
    ErrorCategory.STORAGE: ("Verify storage.models_dir exists and is writable",),
    ErrorCategory.TRAINING: ("Collect more moderated examples for this model kind",),
    ErrorCategory.CONFIGURATION: ("Review configuration files and WINE_ROUTER_* environment variables",),
}

_LOG_LEVELS = {
    ErrorSeverity.CRITICAL: logging.CRITICAL,
    ErrorSeverity.HIGH: logging.ERROR,
    ErrorSeverity.MEDIUM: logging.WARNING,
    ErrorSeverity.LOW: logging.INFO,
}


class CircuitBreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 3
    recovery_timeout: float = 30.0
    expected_exception: Type[Exception] = Exception
    name: Optional[str] = None


class CircuitBreaker:
    """Stops calling a failing dependency until ``recovery_timeout`` has passed.

    After ``failure_threshold`` consecutive failures the breaker opens and
    calls fail fast with :class:`CircuitBreakerError`. Once the timeout has
    elapsed one trial call is let through (half-open); success closes the
    breaker, failure opens it again.
    """

    def __init__(self, config: CircuitBreakerConfig):
        self.config = config
        self.name = config.name or "unnamed"
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.last_failure_time: Optional[datetime] = None

    def _seconds_since_failure(self) -> float:
        if self.last_failure_time is None:
            return float("inf")
        return (datetime.now() - self.last_failure_time).total_seconds()

    def retry_in(self) -> int:
        """Whole seconds until an open breaker lets a trial call through."""
        if self.state != CircuitBreakerState.OPEN:
            return 0
        return max(0, int(self.config.recovery_timeout - self._seconds_since_failure()))

    def _admit(self) -> None:
        if self.state != CircuitBreakerState.OPEN:
            return
        if self._seconds_since_failure() < self.config.recovery_timeout:
            raise CircuitBreakerError(
                f"Circuit breaker '{self.name}' is open; retry in {self.retry_in()}s"
            )
        self.state = CircuitBreakerState.HALF_OPEN
        logger.info(f"Circuit breaker '{self.name}' half-open, trying one call")

    def record_success(self) -> None:
        if self.state != CircuitBreakerState.CLOSED:
            logger.info(f"Circuit breaker '{self.name}' closed")
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = datetime.now()
        if self.state == CircuitBreakerState.HALF_OPEN or self.failure_count >= self.config.failure_threshold:
            if self.state != CircuitBreakerState.OPEN:
                logger.warning(f"Circuit breaker '{self.name}' opened after {self.failure_count} failures")
            self.state = CircuitBreakerState.OPEN

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """Run ``func`` (sync or async) through the breaker.

        Raises:
            CircuitBreakerError: If the breaker is open and not yet due for a trial call
        """
        self._admit()
        try:
            result = func(*args, **kwargs)
            if asyncio.iscoroutine(result):
                result = await result
        except self.config.expected_exception:
            self.record_failure()
            raise
        self.record_success()
        return result

    def get_state(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "failure_count": self.failure_count,
            "failure_threshold": self.config.failure_threshold,
            "last_failure_time": self.last_failure_time.isoformat() if self.last_failure_time else None,
            "time_until_retry": self.retry_in(),
        }

    def reset(self) -> None:
        self.state = CircuitBreakerState.CLOSED
        self.failure_count = 0
        self.last_failure_time = None
        logger.info(f"Circuit breaker '{self.name}' manually reset")


class ErrorHandler:
    """Classifies, counts and logs errors; owns the named circuit breakers."""

    def __init__(self):
        self.error_counts: Dict[str, int] = {}
        self.circuit_breakers: Dict[str, CircuitBreaker] = {}

    def create_circuit_breaker(self, name: str, config: CircuitBreakerConfig) -> CircuitBreaker:
        """Register a breaker under ``name``, replacing any earlier one."""
        config.name = name
        self.circuit_breakers[name] = CircuitBreaker(config)
        return self.circuit_breakers[name]

    def get_circuit_breaker(self, name: str) -> Optional[CircuitBreaker]:
        return self.circuit_breakers.get(name)

    def handle_error(self, error: Exception, context: ErrorContext) -> ErrorResponse:
        """Classify ``error``, count it per component and log it at its severity.

        Args:
            error: Exception that occurred
            context: Where it occurred

        Returns:
            The classified error response
        """
        error_code, category, severity = self.classify(error)
        response = ErrorResponse(
            error_code=error_code,
            message=str(error),
            severity=severity,
            category=category,
            context=context,
            suggestions=list(_SUGGESTIONS.get(category, ())),
            details=self._details(error),
        )

        key = f"{context.component}:{error_code}"
        self.error_counts[key] = self.error_counts.get(key, 0) + 1

        message = f"Error in {context.component}.{context.operation}: {response.message}"
        level = _LOG_LEVELS[severity]
        logger.log(level, message, exc_info=error if level >= logging.ERROR else None)
        return response

    @staticmethod
    def classify(error: Exception) -> Tuple[str, ErrorCategory, ErrorSeverity]:
        """Error code, category and severity for an exception."""
        for error_type, code, category, severity in _FIXED_CODES:
            if isinstance(error, error_type):
                return code, category, severity

        type_name = type(error).__name__
        suffix = type_name.upper()
        if isinstance(error, (asyncio.TimeoutError, TimeoutError)) or "Timeout" in type_name:
            return f"TIMEOUT_{suffix}", ErrorCategory.TIMEOUT, ErrorSeverity.MEDIUM
        if isinstance(error, (RetrievalError, ConnectionError)):
            return f"RETRIEVAL_{suffix}", ErrorCategory.RETRIEVAL, ErrorSeverity.MEDIUM
        if isinstance(error, ValueError) or "Validation" in type_name:
            return f"VALIDATION_{suffix}", ErrorCategory.VALIDATION, ErrorSeverity.LOW
        if "Config" in type_name:
            return f"CONFIG_{suffix}", ErrorCategory.CONFIGURATION, ErrorSeverity.MEDIUM
        if isinstance(error, OSError):
            return f"STORAGE_{suffix}", ErrorCategory.STORAGE, ErrorSeverity.HIGH
        return f"INTERNAL_{suffix}", ErrorCategory.INTERNAL, ErrorSeverity.MEDIUM

    @staticmethod
    def _details(error: Exception) -> Dict[str, Any]:
        # Scalar attributes such as kind/available/required ride along
        details: Dict[str, Any] = {
            key: value
            for key, value in vars(error).items()
            if not key.startswith("_")
            and key not in ("args", "message")
            and isinstance(value, (str, int, float, bool, list, dict))
        }
        details["type"] = type(error).__name__
        details["traceback"] = "".join(traceback.format_exception(type(error), error, error.__traceback__))
        return details

    def get_error_statistics(self) -> Dict[str, Any]:
        return {
            "total_errors": sum(self.error_counts.values()),
            "error_counts_by_type": dict(self.error_counts),
            "circuit_breaker_states": {
                name: breaker.get_state() for name, breaker in self.circuit_breakers.items()
            },
        }

    def reset_statistics(self) -> None:
        self.error_counts.clear()
        logger.info("Error statistics reset")


# Global error handler instance
error_handler = ErrorHandler()


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance."""
    return error_handler
