"""
Partial-update helpers.

Request patches arrive as pydantic models; model_dump(exclude_unset=True)
distinguishes a key that was sent (possibly as null) from one that was
omitted. Two merge rules are applied per field:

- truthy: applied only when the value is truthy. null, "", 0 and False are
  ignored, so such a field cannot be cleared. Lists and dicts always count
  as truthy, empty or not.
- present: applied whenever the key was sent, null included.
"""

from typing import Any, Dict, Iterable


def is_truthy(value: Any) -> bool:
    if value is None or value is False:
        return False
    if isinstance(value, (str, int, float)):
        return bool(value)
    return True


def apply_patch(
    target: Any,
    changes: Dict[str, Any],
    truthy_fields: Iterable[str] = (),
    present_fields: Iterable[str] = (),
) -> Dict[str, Any]:
    """
    Copy the qualifying entries of changes onto target's attributes.

    Returns:
        The subset of changes that was actually applied
    """
    truthy_fields = set(truthy_fields)
    present_fields = set(present_fields)
    applied = {}

    for key, value in changes.items():
        if key in present_fields or (key in truthy_fields and is_truthy(value)):
            setattr(target, key, value)
            applied[key] = value

    return applied
