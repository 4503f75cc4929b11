import math

from models import compute_average, format_grade, parse_grade_text


def test_average_of_graded_values():
    assert compute_average([8, 10]) == 9.0


def test_average_skips_ungraded():
    assert compute_average([8, None, 9]) == 8.5


def test_average_of_nothing_is_zero():
    assert compute_average([]) == 0
    assert compute_average([None, None]) == 0


def test_average_rounds_half_up_to_one_decimal():
    assert compute_average([8.0, 8.5]) == 8.3   # 8.25
    assert compute_average([7, 8, 8]) == 7.7    # 7.666…


def test_format_grade():
    assert format_grade(8) == "8.0"
    assert format_grade(9.25, decimals=2) == "9.25"
    assert format_grade(None) == "–"
    assert format_grade(math.nan) == "–"
    assert format_grade(10.5) == "–"
    assert format_grade(-1) == "–"


def test_parse_grade_text():
    assert parse_grade_text("8.5") == (True, 8.5)
    assert parse_grade_text(" 7,5 ") == (True, 7.5)
    assert parse_grade_text("") == (True, None)
    assert parse_grade_text(None) == (True, None)
    assert parse_grade_text("abc") == (False, None)
    assert parse_grade_text("inf") == (False, None)
    # Out-of-range numbers are accepted here; validation flags them
    assert parse_grade_text("12") == (True, 12.0)
