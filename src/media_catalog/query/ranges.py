"""
Numeric range parsing for query parameters such as ``intensity_range=5-10``.

`parse_range` is lenient and pure: it reports what it could read. An empty or
absent string means "no filter" and yields ``None``; a string with nothing
numeric on either side yields ``NumericRange(None, None)``, which is the
malformed signal. `require_range` applies the rejection policy: any side that
is present but not a finite number is a `ValidationError`.
"""

import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from media_catalog.errors import ValidationError

Number = Union[int, float]


@dataclass(frozen=True)
class NumericRange:
    min: Optional[Number] = None
    max: Optional[Number] = None

    @property
    def is_empty(self) -> bool:
        """True when neither bound could be parsed (malformed input)"""
        return self.min is None and self.max is None


def _to_number(text: str) -> Optional[Number]:
    text = text.strip()
    if not text:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    if not math.isfinite(value):
        return None
    # Integral bounds stay ints so equality-style queries on int fields behave
    return int(value) if value.is_integer() else value


def _split(raw: str) -> List[str]:
    return raw.split("-")


def parse_range(raw: Optional[str]) -> Optional[NumericRange]:
    """
    Parse "min-max", "min-", "-max" or a single number.

    Examples:
        "5-10"  -> NumericRange(5, 10)
        "8-"    -> NumericRange(8, None)
        "-7"    -> NumericRange(None, 7)
        "5"     -> NumericRange(5, None)
        "-5--1" -> NumericRange(-5, -1)
        "abc"   -> NumericRange(None, None)
        ""      -> None
    """
    if not raw:
        return None

    parts = _split(raw)
    if len(parts) == 1:
        return NumericRange(_to_number(parts[0]), None)
    if len(parts) == 2:
        return NumericRange(_to_number(parts[0]), _to_number(parts[1]))
    # "-5--1" splits into ['', '5', '', '1']
    if len(parts) == 4 and parts[0] == "" and parts[2] == "":
        return NumericRange(_to_number(f"-{parts[1]}"), _to_number(f"-{parts[3]}"))
    return NumericRange(_to_number(parts[0]), _to_number(parts[-1]))


def _sides(raw: str) -> List[str]:
    parts = _split(raw)
    if len(parts) == 4 and parts[0] == "" and parts[2] == "":
        return [f"-{parts[1]}", f"-{parts[3]}"]
    if len(parts) <= 2:
        return parts
    return [parts[0], parts[-1]]


def require_range(field: str, raw: Optional[str]) -> Optional[NumericRange]:
    """
    Parse `raw` and reject malformed input.

    Returns None when no range was requested. Raises ValidationError when the
    input is present but any non-empty side is not a finite number.
    """
    parsed = parse_range(raw)
    if parsed is None:
        return None

    bad_side = any(side.strip() and _to_number(side) is None for side in _sides(raw))
    if parsed.is_empty or bad_side:
        raise ValidationError(
            f'Invalid {field} format. Expected format: "min-max" or "number"',
            details={"field": field, "value": raw},
        )
    return parsed


def range_condition(rng: NumericRange) -> Dict[str, Number]:
    """Canonical operator set for a parsed range"""
    condition: Dict[str, Number] = {}
    if rng.min is not None:
        condition["$gte"] = rng.min
    if rng.max is not None:
        condition["$lte"] = rng.max
    return condition
