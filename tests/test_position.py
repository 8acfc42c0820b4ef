# tests/test_position.py

import pytest

from nowly.ordering import position
from nowly.ordering.position import Exhausted, InvalidPositionError


def test_initial_key_for_empty_scope() -> None:
    assert position.between(None, None) == position.initial() == "0"
    assert position.append([]) == "0"


def test_append_orders_after_max() -> None:
    assert position.append(["0"]) == "1"
    assert position.append(["1", "0", "a"]) == "b"
    assert position.append(["z"]) > "z"
    assert position.append(["zz"]) > "zz"


def test_append_ignores_invalid_keys() -> None:
    assert position.append(["", "A!", "3"]) == "4"
    assert position.append(["not valid"]) == position.initial()


def test_between_adjacent_digits_adds_precision() -> None:
    key = position.between("0", "1")
    assert key == "0i"
    assert "0" < key < "1"
    assert position.between("a", "b") == "ai"


def test_between_open_bounds() -> None:
    assert position.between("a", None) == "b"
    low = position.between(None, "1")
    assert low < "1"
    assert position.is_valid_key(low)


def test_between_rejects_bad_bounds() -> None:
    with pytest.raises(InvalidPositionError):
        position.between("b", "a")
    with pytest.raises(InvalidPositionError):
        position.between("a", "a")
    with pytest.raises(InvalidPositionError):
        position.between("a0", None)


def test_nothing_fits_before_minimum_key() -> None:
    result = position.between(None, "0")
    assert isinstance(result, Exhausted)
    assert result.upper == "0"


def test_exhausted_at_precision_limit() -> None:
    lower = "0" * 31 + "1"
    upper = "0" * 31 + "2"
    assert len(upper) == position.MAX_KEY_LENGTH

    result = position.between(lower, upper)
    assert isinstance(result, Exhausted)
    assert (result.lower, result.upper) == (lower, upper)


def test_repeated_insert_at_front_ends_in_exhaustion() -> None:
    keys = ["1"]
    for _ in range(1000):
        result = position.between(None, keys[0])
        if isinstance(result, Exhausted):
            break
        assert position.is_valid_key(result)
        assert result < keys[0]
        keys.insert(0, result)
    else:
        pytest.fail("front insertion never exhausted the key space")

    assert keys == sorted(set(keys))
    assert all(len(key) <= position.MAX_KEY_LENGTH for key in keys)


def test_repeated_insert_between_neighbours_stays_ordered() -> None:
    lower, upper = "a", "b"
    for _ in range(50):
        key = position.between(lower, upper)
        assert lower < key < upper
        upper = key


def test_rebalance_spreads_keys() -> None:
    assert position.rebalance(3) == ["9", "i", "r"]
    assert position.rebalance(5) == ["6", "c", "i", "o", "u"]


def test_rebalance_large_scope() -> None:
    keys = position.rebalance(500)
    assert len(keys) == 500
    assert keys == sorted(set(keys))
    assert keys[0] > position.initial()
    assert all(position.is_valid_key(key) for key in keys)
    # Every gap, and the space in front, has room for another key.
    assert not isinstance(position.between(None, keys[0]), Exhausted)
    for lower, upper in zip(keys, keys[1:]):
        assert not isinstance(position.between(lower, upper), Exhausted)


def test_rebalance_edge_counts() -> None:
    assert position.rebalance(0) == []
    with pytest.raises(ValueError):
        position.rebalance(-1)


@pytest.mark.parametrize("key", ["0", "1", "0i", "zz1"])
def test_valid_keys(key: str) -> None:
    assert position.is_valid_key(key)


@pytest.mark.parametrize("key", ["", "10", "A", "a-b", None, 3])
def test_invalid_keys(key) -> None:
    assert not position.is_valid_key(key)


@pytest.mark.parametrize(
    "lower, upper",
    [(None, None), ("a", None), (None, "5"), ("0", "1"), ("a", "b"), ("0i", "0j"), ("1", "z")],
)
def test_between_is_deterministic(lower, upper) -> None:
    assert position.between(lower, upper) == position.between(lower, upper)


def test_append_and_rebalance_are_deterministic() -> None:
    keys = ["3", "0i", "a"]
    assert position.append(keys) == position.append(list(keys))
    assert position.rebalance(7) == position.rebalance(7)
