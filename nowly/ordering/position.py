"""
Fractional position keys for ordering tasks inside a scope.

A key is a non-empty string over ``ALPHABET`` read as a base-36 fraction
(``"i"`` is 18/36, ``"0i"`` is 18/1296). Because the alphabet is in ASCII
order and canonical keys never end in ``"0"`` (the minimum key ``"0"`` is the
one exception), plain string comparison orders keys the same way their
fractions are ordered. That lets the database sort on the raw column.

Every function here is pure and deterministic: the same inputs always give
the same key, so callers that recompute from the same neighbours never
diverge.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyz"
BASE = len(ALPHABET)
MIN_KEY = ALPHABET[0]

# Precision limit for keys produced by ``between``.
MAX_KEY_LENGTH = 32

_DIGITS = {char: value for value, char in enumerate(ALPHABET)}


class InvalidPositionError(ValueError):
    """A key is malformed, or bounds were passed out of order."""


@dataclass(frozen=True)
class Exhausted:
    """No distinct key fits between the requested bounds at current precision."""

    lower: Optional[str]
    upper: Optional[str]
    reason: str


Allocation = Union[str, Exhausted]


def is_valid_key(key: object) -> bool:
    if not isinstance(key, str) or not key:
        return False
    if any(char not in _DIGITS for char in key):
        return False
    return key == MIN_KEY or not key.endswith(MIN_KEY)


def _require_valid(key: str) -> None:
    if not is_valid_key(key):
        raise InvalidPositionError(f"Invalid position key: {key!r}")


def initial() -> str:
    """Key for the first item of an empty scope."""
    return MIN_KEY


def _after(key: str) -> str:
    # Bump the first digit that still has room and drop the tail.
    for index, char in enumerate(key):
        digit = _DIGITS[char]
        if digit < BASE - 1:
            return key[:index] + ALPHABET[digit + 1]
    return key + ALPHABET[1]


def _char_at(key: str, index: int) -> str:
    return key[index] if index < len(key) else MIN_KEY


def _midpoint(lower: str, upper: Optional[str]) -> str:
    """
    Key strictly between ``lower`` and ``upper`` read as fractions.

    ``lower`` may be empty (zero) and carries no trailing zeros; ``upper`` of
    None stands for one. Requires lower < upper.
    """
    if upper is not None:
        shared = 0
        while shared < len(upper) and _char_at(lower, shared) == upper[shared]:
            shared += 1
        if shared:
            return upper[:shared] + _midpoint(lower[shared:], upper[shared:])

    low = _DIGITS[lower[0]] if lower else 0
    high = _DIGITS[upper[0]] if upper is not None else BASE

    if high - low > 1:
        return ALPHABET[(low + high) // 2]
    # Consecutive leading digits.
    if upper is not None and len(upper) > 1:
        return upper[0]
    return ALPHABET[low] + _midpoint(lower[1:], None)


def append(existing_keys: Iterable[str]) -> str:
    """
    Key ordered strictly after every valid key in ``existing_keys``.

    Invalid entries are ignored; with nothing valid to follow, the scope is
    treated as empty.
    """
    valid = [key for key in existing_keys if is_valid_key(key)]
    if not valid:
        return initial()
    return _after(max(valid))


def between(lower: Optional[str] = None, upper: Optional[str] = None) -> Allocation:
    """
    Key strictly between ``lower`` and ``upper``; either bound may be absent.

    Returns ``Exhausted`` instead of a key when nothing fits: inserting before
    the minimum key, or when the midpoint would exceed ``MAX_KEY_LENGTH``.
    """
    if lower is not None:
        _require_valid(lower)
    if upper is not None:
        _require_valid(upper)

    if lower is None and upper is None:
        return initial()
    if upper is None:
        return _after(lower)
    if lower is not None and lower >= upper:
        raise InvalidPositionError(f"Bounds out of order: {lower!r} >= {upper!r}")

    if upper == MIN_KEY:
        return Exhausted(lower, upper, "nothing sorts before the minimum key")

    key = _midpoint((lower or "").rstrip(MIN_KEY), upper)
    if len(key) > MAX_KEY_LENGTH:
        return Exhausted(lower, upper, "neighbours are adjacent at maximum precision")
    return key


def _encode(value: int, width: int) -> str:
    chars = []
    for _ in range(width):
        value, digit = divmod(value, BASE)
        chars.append(ALPHABET[digit])
    return "".join(reversed(chars))


def rebalance(count: int) -> List[str]:
    """
    ``count`` strictly increasing keys spread evenly over the key space.

    Keys are spaced at least one full digit apart and the first one sits above
    the minimum, so the scope regains room at both ends and between items.
    """
    if count < 0:
        raise ValueError("count must be non-negative")
    if count == 0:
        return []

    width = 1
    while BASE ** width < (count + 1) * BASE:
        width += 1
    span = BASE ** width

    return [
        _encode((index + 1) * span // (count + 1), width).rstrip(MIN_KEY)
        for index in range(count)
    ]
