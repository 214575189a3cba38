from __future__ import annotations

from dataclasses import dataclass, field as dc_field
from typing import Any, Union

from pgsimple.types import Serializable


@dataclass(frozen=True)
class SeekParam:
    """Ordering key and resume point of a keyset.

    ``value`` is None until a row has been seen (first page). When
    ``search_query`` is set, ``value`` holds a similarity score instead of a
    column value. ``maybe_equal`` is None unless the field may hold nulls that
    should be paged through together with one concrete value.
    """

    field: str
    value: Serializable | None = None
    desc: bool = False
    search_query: str | None = None
    maybe_equal: Serializable | None = None


@dataclass(frozen=True)
class WhereParam:
    field: str
    value: Any


@dataclass(frozen=True)
class SliceParam:
    """``field IN values``, or array overlap when ``overlap`` is set."""

    field: str
    values: tuple[Serializable, ...] = dc_field(default_factory=tuple)
    overlap: bool = False


@dataclass(frozen=True)
class NullParam:
    field: str
    is_null: bool


KeysetParam = Union[SeekParam, WhereParam, SliceParam, NullParam]


def seek_params(params: list[KeysetParam]) -> list[SeekParam]:
    return [p for p in params if isinstance(p, SeekParam)]


def in_params(params: list[KeysetParam]) -> list[SliceParam]:
    return [p for p in params if isinstance(p, SliceParam) and not p.overlap]


def where_params(params: list[KeysetParam]) -> list[WhereParam]:
    return [p for p in params if isinstance(p, WhereParam)]


def intersect_params(params: list[KeysetParam]) -> list[SliceParam]:
    return [p for p in params if isinstance(p, SliceParam) and p.overlap]


def null_params(params: list[KeysetParam]) -> list[NullParam]:
    return [p for p in params if isinstance(p, NullParam)]


def grouped(params: list[KeysetParam]) -> list[KeysetParam]:
    """Params in the order statements are built from: seek, in, where, intersect, null."""
    return [
        *seek_params(params),
        *in_params(params),
        *where_params(params),
        *intersect_params(params),
        *null_params(params),
    ]
