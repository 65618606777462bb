"""Tests for the operation decorator and correlation propagation."""

import pytest

from accurate_exchange.context.operation_context import operation
from accurate_exchange.exceptions import (
    BaseError,
    clear_correlation_id,
    get_correlation_id,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def clean_correlation():
    clear_correlation_id()
    yield
    clear_correlation_id()


class TestOperationDecorator:
    def test_returns_result_and_clears_owned_correlation(self):
        seen = []

        @operation(name="test.outer")
        def outer():
            seen.append(get_correlation_id())
            return "done"

        assert outer() == "done"
        assert seen[0] is not None
        assert get_correlation_id() is None

    def test_nested_operations_share_correlation(self):
        seen = []

        @operation(name="test.inner")
        def inner():
            seen.append(get_correlation_id())

        @operation(name="test.outer")
        def outer():
            seen.append(get_correlation_id())
            inner()
            seen.append(get_correlation_id())

        outer()

        assert len(set(seen)) == 1

    def test_inherits_existing_correlation(self):
        set_correlation_id("request-42")

        @operation(name="test.op")
        def op():
            return get_correlation_id()

        assert op() == "request-42"
        assert get_correlation_id() == "request-42"

    def test_base_error_enriched_with_operation(self):
        @operation(name="test.failing")
        def failing():
            raise BaseError("boom")

        with pytest.raises(BaseError) as exc_info:
            failing()

        assert exc_info.value.context["operation_name"] == "test.failing"
        assert "operation_id" in exc_info.value.context

    def test_other_exceptions_propagate_unchanged(self):
        @operation(name="test.crash")
        def crash():
            raise KeyError("missing")

        with pytest.raises(KeyError):
            crash()
        assert get_correlation_id() is None

    def test_default_name(self, caplog):
        @operation()
        def unnamed():
            return 1

        with caplog.at_level("INFO", logger="accurate_exchange"):
            unnamed()

        assert any("test_operation_context." in r.getMessage() for r in caplog.records)
