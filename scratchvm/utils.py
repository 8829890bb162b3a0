import math
from itertools import count
from typing import Any

_id_counter = count(1)


def gen_id(prefix: str = "id") -> str:
    return f"{prefix}_{next(_id_counter)}"


def to_number(value: Any) -> float:
    """Cast a value to a number the way legacy projects expect (bad input is 0)."""
    if isinstance(value, bool):
        return 1 if value else 0
    if isinstance(value, (int, float)):
        return 0 if isinstance(value, float) and math.isnan(value) else value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            number = float(text)
        except ValueError:
            return 0
        if math.isnan(number):
            return 0
        return int(number) if number.is_integer() and "." not in text and "e" not in text.lower() else number
    return 0


def to_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() not in {"", "0", "false"}
    return bool(value)


def to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str) and value.strip():
        try:
            float(value)
        except ValueError:
            return False
        return True
    return False


def wrap_degrees(direction: float) -> float:
    """Wrap a heading into the range (-180, 180]."""
    wrapped = (direction + 180) % 360 - 180
    return 180 if wrapped == -180 else wrapped
