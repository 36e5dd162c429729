import random

from models.unit_models import (
    AUTHOR_NOTE_NUMBER,
    EPILOGUE_NUMBER,
    Unit,
    normalize_unit_number,
    sort_units,
    unit_label,
    unit_sort_key,
)


def test_sentinels_normalize_consistently():
    assert normalize_unit_number(-1) == normalize_unit_number(998) == EPILOGUE_NUMBER
    assert normalize_unit_number(-2) == normalize_unit_number(999) == AUTHOR_NOTE_NUMBER
    assert normalize_unit_number(0) == 0
    assert normalize_unit_number(7) == 7
    assert unit_sort_key(-1) == unit_sort_key(998)
    assert unit_sort_key(-2) == unit_sort_key(999)


def test_canonical_order_is_total_regardless_of_sentinel():
    numbers = [999, 3, -1, 0, 12, 1, 2]
    ordered = sorted(numbers, key=unit_sort_key)
    assert ordered == [0, 1, 2, 3, 12, -1, 999]

    mixed = [-2, 998, 5, 0, 4]
    assert sorted(mixed, key=unit_sort_key) == [0, 4, 5, 998, -2]


def test_sort_is_stable_under_shuffling():
    units = [Unit(project_id="p", number=n) for n in [0, 1, 2, 10, 11, -1, -2]]
    expected = [u.number for u in sort_units(units)]
    for seed in range(5):
        shuffled = units[:]
        random.Random(seed).shuffle(shuffled)
        assert [u.number for u in sort_units(shuffled)] == expected
    assert expected == [0, 1, 2, 10, 11, EPILOGUE_NUMBER, AUTHOR_NOTE_NUMBER]


def test_unit_numbers_are_stored_canonically():
    assert Unit(project_id="p", number=-1).number == EPILOGUE_NUMBER
    assert Unit(project_id="p", number=-2).record_id == "p:999"
    assert unit_label(0) == "Prologue"
    assert unit_label(-1) == "Epilogue"
    assert unit_label(4) == "Chapter 4"
