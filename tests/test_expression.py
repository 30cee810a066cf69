import pytest

from billsplit.api.expression import ExpressionError, evaluate_expression


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("250", 250.0),
        ("1.5 + 2.25", 3.75),
        ("(100 - 20) * 2 / 4", 40.0),
        ("-5 + 10", 5.0),
        ("10 ÷ 4 × 2", 5.0),
        ("2 / 3", 0.6667),
    ],
)
def test_evaluates_plain_arithmetic(text: str, expected: float) -> None:
    assert evaluate_expression(text) == expected


@pytest.mark.parametrize(
    "text",
    [
        "",
        "   ",
        "1 +",
        "2 ** 8",
        "7 // 2",
        "5 % 2",
        "1 / 0",
        "abs(-3)",
        "__import__('os')",
        "x + 1",
        "'12'",
        "True + 1",
        "3 - 10",
        "1" * 250,
    ],
)
def test_rejects_anything_else(text: str) -> None:
    with pytest.raises(ExpressionError):
        evaluate_expression(text)
