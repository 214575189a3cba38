import base64

import orjson
import pytest

from pgsimple.errors import CursorDecodeError
from pgsimple.keyset import Keyset, SeekParam, decode_cursor, encode_cursor


def _cursor(doc) -> str:
    return base64.b64encode(orjson.dumps(doc)).decode()


def _keyset() -> Keyset:
    return Keyset(db=None, table="test")


KEYSETS = [
    lambda: _keyset().start("id", first=10),
    lambda: _keyset().start("id", last=5).where("owner", "ann").in_("kind", ["a", "b"]),
    lambda: _keyset()
    .seek("message", 0.42, search_query="hell", desc=True)
    .intersect("tags", ["x", "y"])
    .is_null("deleted_at")
    .not_null("created_at"),
    lambda: _keyset().seek("id", 12).seek("parent_id", 3, maybe_equal=3).where("owner", None),
    lambda: _keyset().seek("other.id", "it's").where("other.flag", True),
]


@pytest.mark.parametrize("build", KEYSETS)
def test_decoded_cursor_reproduces_sql(build):
    original = build()
    restored = _keyset()
    restored.limit_results = original.limit_results
    restored.from_cursor(original.to_cursor())

    assert restored.to_sql() == original.to_sql()
    assert restored.total_count_sql() == original.total_count_sql()


def test_cursor_uses_compact_keys():
    keyset = _keyset().seek("id", 3, desc=True).where("owner", "ann").is_null("x")
    doc = orjson.loads(base64.b64decode(keyset.to_cursor()))

    assert doc == {
        "s": [{"f": "id", "v": 3, "d": True}],
        "f": [],
        "w": [{"f": "owner", "v": "ann"}],
        "i": [],
        "n": [{"f": "x", "n": True}],
    }


def test_maybe_equal_survives_round_trip():
    params = decode_cursor(encode_cursor([SeekParam("parent_id", None, maybe_equal=7)]))
    assert params == [SeekParam("parent_id", None, maybe_equal=7)]


def test_missing_groups_decode_as_empty():
    assert decode_cursor(_cursor({"s": [{"f": "id", "v": 1}]})) == [SeekParam("id", 1)]


@pytest.mark.parametrize(
    "cursor",
    [
        "not base64 at all!",
        base64.b64encode(b"{not json").decode(),
        _cursor([1, 2, 3]),
        _cursor({"s": {"f": "id"}}),
        _cursor({"s": [{"v": 1}]}),
        _cursor({"s": [{"f": "id", "v": [1, 2]}]}),
        _cursor({"f": [{"f": "kind", "v": "a"}]}),
        _cursor({"n": [{"f": "x", "n": "yes"}]}),
    ],
)
def test_malformed_cursor(cursor):
    with pytest.raises(CursorDecodeError):
        decode_cursor(cursor)
