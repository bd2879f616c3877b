"""Unit tests for namespace normalization."""

import re

import pytest

from src.engine.namespaces import DEFAULT_NAMESPACE, normalize_namespace

VALID = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")

SAMPLES = [
    "dev",
    "Eco_Test",
    "  spaced  out ",
    "---leading-and-trailing---",
    "UPPER.case.dots",
    "a" * 100,
    "x" * 62 + "-y",
    "-" * 10,
    "",
    "ünïcödé",
    "team/feature#42",
    "a--b---c",
]


class TestNormalizeNamespace:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("dev", "dev"),
            ("Eco_Test", "eco-test"),
            ("my..ns", "my-ns"),
            ("--edge--", "edge"),
            ("a--b---c", "a-b-c"),
        ],
    )
    def test_known_inputs(self, raw: str, expected: str) -> None:
        assert normalize_namespace(raw) == expected

    @pytest.mark.parametrize("raw", ["", "---", "___", "!!!"])
    def test_empty_result_falls_back_to_default(self, raw: str) -> None:
        assert normalize_namespace(raw) == DEFAULT_NAMESPACE

    def test_long_names_are_truncated_to_a_valid_label(self) -> None:
        result = normalize_namespace("x" * 62 + "-y" + "z" * 10)

        assert len(result) <= 63
        assert VALID.match(result)

    def test_truncation_does_not_leave_a_trailing_dash(self) -> None:
        result = normalize_namespace("a" * 62 + "-b")

        assert result == "a" * 62

    @pytest.mark.parametrize("raw", SAMPLES)
    def test_output_is_always_a_valid_label(self, raw: str) -> None:
        assert VALID.match(normalize_namespace(raw))

    @pytest.mark.parametrize("raw", SAMPLES)
    def test_is_idempotent(self, raw: str) -> None:
        once = normalize_namespace(raw)
        assert normalize_namespace(once) == once
