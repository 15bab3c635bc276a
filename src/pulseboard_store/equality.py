"""Payload comparison used by stale-while-revalidate.

Revalidation replaces cached data only when the fresh payload differs from
the one on display. :func:`payloads_equal` prefers a version or
update-timestamp field when both sides carry it and otherwise falls back to
structural equality over plain data.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from pydantic import BaseModel

__all__ = ["normalize_payload", "payloads_equal"]

_MISSING = object()


def normalize_payload(payload: object) -> object:
    """Convert pydantic models (at any depth) to plain data for comparison."""
    if isinstance(payload, BaseModel):
        return payload.model_dump()
    if isinstance(payload, Mapping):
        return {key: normalize_payload(value) for key, value in payload.items()}
    if isinstance(payload, (list, tuple)):
        return [normalize_payload(item) for item in payload]
    return payload


def _version_of(item: object, field: str) -> object:
    if isinstance(item, Mapping):
        return item.get(field, _MISSING)
    return getattr(item, field, _MISSING)


def _versions(payload: object, field: str) -> list[object] | None:
    items: Sequence[object]
    if isinstance(payload, (list, tuple)):
        items = payload
    else:
        items = (payload,)
    versions = [_version_of(item, field) for item in items]
    if any(version is _MISSING or version is None for version in versions):
        return None
    return versions


def payloads_equal(current: object, fresh: object, *, version_field: str | None = None) -> bool:
    """Return True when ``fresh`` carries no change relative to ``current``.

    Parameters
    ----------
    current : object
        Payload currently on display.
    fresh : object
        Payload returned by the refresh query.
    version_field : str | None, optional
        Field holding a comparable version. Used only when every item on both
        sides carries it (lists must also have equal length). Defaults to None.

    Returns
    -------
    bool
        Whether the payloads are considered equal.

    Examples
    --------
    >>> payloads_equal({"name": "X", "id": 1}, {"id": 1, "name": "X"})
    True
    >>> payloads_equal([{"v": 2, "name": "a"}], [{"v": 2, "name": "b"}], version_field="v")
    True
    """
    if version_field is not None:
        current_versions = _versions(current, version_field)
        fresh_versions = _versions(fresh, version_field)
        if (
            current_versions is not None
            and fresh_versions is not None
            and len(current_versions) == len(fresh_versions)
        ):
            return current_versions == fresh_versions
    return normalize_payload(current) == normalize_payload(fresh)
