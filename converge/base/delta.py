"""Default field-by-field delta between actual and desired descriptors.

The scheduler normally supplies the delta; this implementation is what
:meth:`converge.instance.InstanceTask.run` uses when it does not.
"""

from __future__ import annotations

from typing import Any

from converge.base.resource import Instance


def _comparable(value: Any) -> Any:
    # Reference stubs compare by identity, not by every attribute.
    if isinstance(value, list):
        return [_comparable(v) for v in value]
    if hasattr(value, "compare_with_id"):
        return value.compare_with_id()
    return value


def compute_changes(actual: Instance | None, desired: Instance) -> Instance:
    """Return an :class:`Instance` holding only the fields that must change.

    When *actual* is ``None`` every desired field is a change. Otherwise a
    field is a change when the desired value is set and differs from the
    actual one. ``id`` is never part of a delta.
    """
    if actual is None:
        return desired.model_copy(update={"id": None}, deep=True)

    diff: dict[str, Any] = {}
    for field in Instance.model_fields:
        if field == "id":
            continue
        want = getattr(desired, field)
        if want is None:
            continue
        if _comparable(want) != _comparable(getattr(actual, field)):
            diff[field] = want
    return Instance(**diff)


def changed_fields(changes: Instance | None) -> list[str]:
    """Names of the fields set on *changes*, in declaration order."""
    if changes is None:
        return []
    return [f for f in Instance.model_fields if getattr(changes, f) is not None]
