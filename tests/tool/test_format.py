"""Tests for the format library."""

from kustomize_values.tool.format import PrintFormatter, column_format_string


def test_column_format_string() -> None:
    """Tests widths are padded to the widest value."""
    assert column_format_string([["a", "bbb"], ["cc", "d"]]) == "{:6}{:7}"


def test_print_formatter_empty() -> None:
    """Print formatting with empty data."""
    assert list(PrintFormatter().format([])) == []


def test_print_formatter_results() -> None:
    """Print formatting generator results."""
    formatter = PrintFormatter(["service", "environment", "status"])
    assert list(
        formatter.format(
            [
                {"service": "api", "environment": "-", "status": "generated"},
                {"service": "api", "environment": "qa", "status": "skipped"},
            ]
        )
    ) == [
        "SERVICE    ENVIRONMENT    STATUS",
        "api        -              generated",
        "api        qa             skipped",
    ]
