"""Tests for domain models."""

import pytest

from telemetripy.core.models import (
    ErrorContext,
    LogError,
    LogMetadata,
    MemoryInfo,
    new_id,
    normalize_level,
)


class TestNormalizeLevel:
    """Tests for normalize_level()."""

    @pytest.mark.core
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("INFO", "info"),
            (" Warn ", "warn"),
            ("warning", "warn"),
            ("CRITICAL", "fatal"),
            ("exception", "error"),
            ("trace", "debug"),
            ("verbose", "info"),
            (None, "info"),
        ],
    )
    def test_levels(self, value: object, expected: str) -> None:
        assert normalize_level(value) == expected

    @pytest.mark.core
    def test_custom_default(self) -> None:
        assert normalize_level("verbose", default=None) is None


class TestModels:
    """Tests for model helpers."""

    @pytest.mark.core
    def test_new_id_is_prefixed_and_unique(self) -> None:
        first, second = new_id("err"), new_id("err")
        assert first.startswith("err_")
        assert first != second

    @pytest.mark.core
    def test_error_context_folds_unknown_keys_into_metadata(self) -> None:
        context = ErrorContext.from_mapping(
            {"user_id": "u-1", "order_id": 7, "metadata": {"cart": 3}}
        )
        assert context.user_id == "u-1"
        assert context.metadata == {"cart": 3, "order_id": 7}

    @pytest.mark.core
    def test_to_dict_is_plain_data(self) -> None:
        data = LogMetadata(service="checkout", tags=("a",)).to_dict()
        assert data["service"] == "checkout"
        assert data["tags"] == ("a",)

    @pytest.mark.core
    def test_log_error_from_exception(self) -> None:
        class CodedError(Exception):
            code = 409

        try:
            raise CodedError("conflict")
        except CodedError as exc:
            error = LogError.from_exception(exc)
        assert error.name == "CodedError"
        assert error.message == "conflict"
        assert error.code == "409"
        assert error.stack is not None and "CodedError: conflict" in error.stack

    @pytest.mark.core
    @pytest.mark.parametrize(
        ("used", "limit", "ratio"), [(50, 200, 0.25), (50, 0, 0.0)]
    )
    def test_memory_usage_ratio(self, used: float, limit: float, ratio: float) -> None:
        info = MemoryInfo(used_bytes=used, total_bytes=100, limit_bytes=limit, timestamp=0)
        assert info.usage_ratio == ratio
