"""Opaque cursors: base64 of a compact JSON document of the keyset params.

Groups are keyed ``s`` (seek), ``f`` (in), ``w`` (where), ``i`` (intersect)
and ``n`` (null). Entries use ``f`` field, ``v`` value(s), ``d`` desc, ``n``
null flag, ``q`` search query and ``m`` maybe-equal value.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any

import orjson

from pgsimple.errors import CursorDecodeError
from pgsimple.keyset.params import (
    KeysetParam,
    NullParam,
    SeekParam,
    SliceParam,
    WhereParam,
    in_params,
    intersect_params,
    null_params,
    seek_params,
    where_params,
)
from pgsimple.types import SerializedKeyset, SerializedParam


def _compact(entry: dict[str, Any]) -> SerializedParam:
    return {k: v for k, v in entry.items() if v is not None}  # type: ignore[return-value]


def _serialize_seek(param: SeekParam) -> SerializedParam:
    return _compact(
        {
            "f": param.field,
            "v": param.value,
            "d": param.desc or None,
            "q": param.search_query,
            "m": param.maybe_equal,
        }
    )


def serialize(params: list[KeysetParam]) -> SerializedKeyset:
    return {
        "s": [_serialize_seek(p) for p in seek_params(params)],
        "f": [{"f": p.field, "v": list(p.values)} for p in in_params(params)],
        "w": [_compact({"f": p.field, "v": p.value}) for p in where_params(params)],
        "i": [{"f": p.field, "v": list(p.values)} for p in intersect_params(params)],
        "n": [{"f": p.field, "n": p.is_null} for p in null_params(params)],
    }


def encode_cursor(params: list[KeysetParam]) -> str:
    payload = orjson.dumps(serialize(params), default=str)
    return base64.b64encode(payload).decode("ascii")


def _entries(doc: dict, key: str) -> list[dict]:
    entries = doc.get(key)
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise CursorDecodeError(f"incorrect encoded cursor, '{key}' must be a list")
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("f"), str):
            raise CursorDecodeError(
                f"incorrect encoded cursor, '{key}' entries need a string field"
            )
    return entries


def _decode_seek(entry: dict) -> SeekParam:
    value = entry.get("v")
    if isinstance(value, (list, dict)):
        raise CursorDecodeError("incorrect encoded seek obj, cannot be array")
    maybe_equal = entry.get("m")
    if isinstance(maybe_equal, (list, dict)):
        raise CursorDecodeError("incorrect encoded seek obj, maybe equal cannot be array")
    search_query = entry.get("q")
    if search_query is not None and not isinstance(search_query, str):
        raise CursorDecodeError("incorrect encoded seek obj, search query must be a string")
    return SeekParam(
        field=entry["f"],
        value=value,
        desc=bool(entry.get("d")),
        search_query=search_query or None,
        maybe_equal=maybe_equal,
    )


def _decode_slice(entry: dict, overlap: bool) -> SliceParam:
    values = entry.get("v")
    if not isinstance(values, list):
        raise CursorDecodeError(f"incorrect encoded filter on {entry['f']}, expected array")
    return SliceParam(field=entry["f"], values=tuple(values), overlap=overlap)


def _decode_null(entry: dict) -> NullParam:
    is_null = entry.get("n")
    if not isinstance(is_null, bool):
        raise CursorDecodeError(f"incorrect encoded null filter on {entry['f']}")
    return NullParam(field=entry["f"], is_null=is_null)


def deserialize(doc: Any) -> list[KeysetParam]:
    if not isinstance(doc, dict):
        raise CursorDecodeError("incorrect encoded cursor, expected an object")

    params: list[KeysetParam] = []
    params.extend(_decode_seek(e) for e in _entries(doc, "s"))
    params.extend(_decode_slice(e, overlap=False) for e in _entries(doc, "f"))
    params.extend(WhereParam(field=e["f"], value=e.get("v")) for e in _entries(doc, "w"))
    params.extend(_decode_slice(e, overlap=True) for e in _entries(doc, "i"))
    params.extend(_decode_null(e) for e in _entries(doc, "n"))
    return params


def decode_cursor(cursor: str) -> list[KeysetParam]:
    try:
        payload = base64.b64decode(cursor, validate=True)
        doc = orjson.loads(payload)
    except (binascii.Error, ValueError) as e:
        raise CursorDecodeError(f"could not decode cursor: {e}") from e
    return deserialize(doc)
