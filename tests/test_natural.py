import itertools
import random

from core.natural import compare_natural, natural_key, natural_sorted


def test_digit_runs_compare_by_value():
    assert compare_natural("Setup 2", "Setup 10") == -1
    assert compare_natural("Setup 10", "Setup 10a") == -1
    assert compare_natural("Setup 10a", "Setup 2") == 1
    assert compare_natural("Setup_1", "Setup_10") == -1


def test_text_runs_are_case_insensitive():
    assert natural_key("setup 3") < natural_key("SETUP 4")
    assert compare_natural("alpha", "Beta") == -1


def test_leading_zeros_are_ignored_but_order_stays_total():
    assert compare_natural("v007", "v8") == -1
    assert compare_natural("01", "1") != 0
    assert compare_natural("a1", "A1") != 0
    assert compare_natural("x", "x") == 0


def test_prefix_run_sequence_sorts_first():
    assert compare_natural("Setup", "Setup 1") == -1
    assert compare_natural("", "a") == -1


def test_digit_run_sorts_before_text_run():
    assert compare_natural("1abc", "abc") == -1


def test_compare_natural_is_a_total_order():
    items = ["Setup 10", "setup 2", "Setup 10a", "Setup 1", "Setup 01", "a", "A", "", "b2", "b10", "B3"]

    for a, b in itertools.product(items, repeat=2):
        assert compare_natural(a, b) == -compare_natural(b, a)
        assert (compare_natural(a, b) == 0) == (a == b)

    for a, b, c in itertools.product(items, repeat=3):
        if compare_natural(a, b) <= 0 and compare_natural(b, c) <= 0:
            assert compare_natural(a, c) <= 0


def test_natural_sorted_is_independent_of_input_order():
    items = ["Setup 10", "Setup 2", "Setup 10a", "Setup 1", "setup 3"]
    expected = ["Setup 1", "Setup 2", "setup 3", "Setup 10", "Setup 10a"]

    rng = random.Random(7)
    for _ in range(20):
        shuffled = items[:]
        rng.shuffle(shuffled)
        assert natural_sorted(shuffled) == expected


def test_natural_sorted_with_key():
    rows = [{"name": "Race 12"}, {"name": "Race 3"}]

    assert natural_sorted(rows, key=lambda r: r["name"]) == [{"name": "Race 3"}, {"name": "Race 12"}]


def test_superscript_digits_compare_as_text():
    assert compare_natural("Spring 5²", "Spring 6") == -1
    assert compare_natural("Spring 5²", "Spring 5") == 1
    assert natural_key("x²")[0] == ((1, "x²"),)
