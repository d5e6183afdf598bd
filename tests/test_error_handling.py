"""Tests for error classification and circuit breaking."""

import asyncio
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

from wine_router.utils.error_handling import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerError,
    CircuitBreakerState,
    ErrorCategory,
    ErrorContext,
    ErrorHandler,
    ErrorSeverity,
    InsufficientTrainingDataError,
    ModelSchemaMismatchError,
    ModelStoreError,
    RetrievalError,
    WineRouterError,
    get_error_handler,
)


class TestErrorHandler:
    """Test cases for ErrorHandler class."""

    def setup_method(self):
        """Set up test fixtures."""
        self.error_handler = ErrorHandler()
        self.context = ErrorContext(component="test", operation="test_op")

    def test_insufficient_training_data_is_low_severity(self):
        error = InsufficientTrainingDataError("route", available=3, required=10)

        response = self.error_handler.handle_error(error, self.context)

        assert response.error_code == "INSUFFICIENT_TRAINING_DATA"
        assert response.category == ErrorCategory.TRAINING
        assert response.severity == ErrorSeverity.LOW
        assert response.details["available"] == 3
        assert response.details["required"] == 10

    def test_schema_mismatch_is_high_severity(self):
        response = self.error_handler.handle_error(ModelSchemaMismatchError("missing weights"), self.context)

        assert response.error_code == "MODEL_SCHEMA_MISMATCH"
        assert response.category == ErrorCategory.SCHEMA
        assert response.severity == ErrorSeverity.HIGH
        assert any("compatible" in suggestion for suggestion in response.suggestions)

    def test_model_store_error(self):
        response = self.error_handler.handle_error(ModelStoreError("disk full"), self.context)

        assert response.error_code == "MODEL_STORE_FAILURE"
        assert response.category == ErrorCategory.STORAGE

    def test_timeout_error(self):
        response = self.error_handler.handle_error(asyncio.TimeoutError(), self.context)

        assert response.category == ErrorCategory.TIMEOUT
        assert response.error_code.startswith("TIMEOUT_")

    def test_retrieval_error(self):
        response = self.error_handler.handle_error(RetrievalError("service down"), self.context)

        assert response.category == ErrorCategory.RETRIEVAL
        assert response.error_code == "RETRIEVAL_RETRIEVALERROR"

    def test_circuit_breaker_error_takes_precedence(self):
        response = self.error_handler.handle_error(CircuitBreakerError("open"), self.context)

        assert response.error_code == "CIRCUIT_BREAKER_OPEN"
        assert response.category == ErrorCategory.RETRIEVAL

    def test_value_error_is_validation(self):
        response = self.error_handler.handle_error(ValueError("bad input"), self.context)

        assert response.category == ErrorCategory.VALIDATION
        assert response.severity == ErrorSeverity.LOW

    def test_unknown_error_is_internal(self):
        response = self.error_handler.handle_error(RuntimeError("boom"), self.context)

        assert response.category == ErrorCategory.INTERNAL
        assert response.error_code == "INTERNAL_RUNTIMEERROR"

    def test_error_tracking_and_reset(self):
        for _ in range(3):
            self.error_handler.handle_error(RetrievalError("down"), self.context)

        stats = self.error_handler.get_error_statistics()
        assert stats["total_errors"] == 3
        assert stats["error_counts_by_type"]["test:RETRIEVAL_RETRIEVALERROR"] == 3

        self.error_handler.reset_statistics()
        assert self.error_handler.get_error_statistics()["total_errors"] == 0

    def test_response_to_dict(self):
        context = ErrorContext(component="router", operation="route", kind="route", question="hi")
        response = self.error_handler.handle_error(ModelStoreError("nope"), context)

        data = response.to_dict()

        assert data["error_code"] == "MODEL_STORE_FAILURE"
        assert data["severity"] == "high"
        assert data["category"] == "storage"
        assert data["context"]["kind"] == "route"
        assert data["context"]["question"] == "hi"

    def test_all_errors_share_base_class(self):
        for error in (
            InsufficientTrainingDataError("intent", 0, 10),
            ModelSchemaMismatchError("x"),
            ModelStoreError("x"),
            RetrievalError("x"),
            CircuitBreakerError("x"),
        ):
            assert isinstance(error, WineRouterError)

    def test_global_handler_is_singleton(self):
        assert get_error_handler() is get_error_handler()


class TestCircuitBreaker:
    """Test cases for CircuitBreaker."""

    def setup_method(self):
        self.config = CircuitBreakerConfig(failure_threshold=2, recovery_timeout=60.0, name="test")
        self.breaker = CircuitBreaker(self.config)

    @pytest.mark.asyncio
    async def test_successful_call(self):
        func = AsyncMock(return_value="ok")

        result = await self.breaker.call(func, "arg")

        assert result == "ok"
        func.assert_awaited_once_with("arg")
        assert self.breaker.state == CircuitBreakerState.CLOSED

    @pytest.mark.asyncio
    async def test_opens_after_threshold(self):
        func = AsyncMock(side_effect=RetrievalError("down"))

        for _ in range(2):
            with pytest.raises(RetrievalError):
                await self.breaker.call(func)

        assert self.breaker.state == CircuitBreakerState.OPEN

        with pytest.raises(CircuitBreakerError):
            await self.breaker.call(func)
        assert func.await_count == 2

    @pytest.mark.asyncio
    async def test_half_open_after_recovery_timeout(self):
        self.breaker.state = CircuitBreakerState.OPEN
        self.breaker.failure_count = 2
        self.breaker.last_failure_time = datetime.now() - timedelta(seconds=61)

        result = await self.breaker.call(AsyncMock(return_value=[]))

        assert result == []
        assert self.breaker.state == CircuitBreakerState.CLOSED
        assert self.breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_sync_function_supported(self):
        assert await self.breaker.call(lambda x: x * 2, 21) == 42

    def test_get_state_and_reset(self):
        self.breaker.state = CircuitBreakerState.OPEN
        self.breaker.failure_count = 5
        self.breaker.last_failure_time = datetime.now()

        state = self.breaker.get_state()
        assert state["name"] == "test"
        assert state["state"] == "open"
        assert state["failure_count"] == 5

        self.breaker.reset()
        assert self.breaker.state == CircuitBreakerState.CLOSED
        assert self.breaker.failure_count == 0

    def test_handler_registers_breaker(self):
        handler = ErrorHandler()
        breaker = handler.create_circuit_breaker("retrieval", CircuitBreakerConfig())

        assert handler.get_circuit_breaker("retrieval") is breaker
        assert breaker.name == "retrieval"
        assert "retrieval" in handler.get_error_statistics()["circuit_breaker_states"]
