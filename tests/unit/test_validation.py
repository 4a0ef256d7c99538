from __future__ import annotations

import pytest

from cascade.domain.validation import (
    format_national_id,
    is_valid_national_id,
    is_valid_plate,
    normalize_plate,
    plate_format,
    resolve_national_id,
)


class TestPlates:
    @pytest.mark.parametrize(
        "raw, expected",
        [("abc-1234", "ABC1234"), (" abc 1d23 ", "ABC1D23"), ("XYZ5678", "XYZ5678")],
    )
    def test_normalize(self, raw: str, expected: str) -> None:
        assert normalize_plate(raw) == expected

    def test_formats(self) -> None:
        assert plate_format("ABC1234") == "legacy"
        assert plate_format("ABC1D23") == "mercosul"
        assert plate_format("AB12345") == "invalid"
        assert plate_format("") == "invalid"

    def test_is_valid(self) -> None:
        assert is_valid_plate("abc-1234")
        assert not is_valid_plate("1234ABC")


class TestNationalIds:
    @pytest.mark.parametrize("value", ["52998224725", "529.982.247-25", "11144477735"])
    def test_valid(self, value: str) -> None:
        assert is_valid_national_id(value)

    @pytest.mark.parametrize("value", ["52998224724", "11111111111", "123", ""])
    def test_invalid(self, value: str) -> None:
        assert not is_valid_national_id(value)

    def test_resolve_returns_normalized_or_none(self) -> None:
        assert resolve_national_id("529.982.247-25") == "52998224725"
        assert resolve_national_id("000.000.000-00") is None
        assert resolve_national_id(None) is None

    def test_format(self) -> None:
        assert format_national_id("52998224725") == "529.982.247-25"
        assert format_national_id("123") == "123"
