from pgsimple.keyset.cursor import decode_cursor, encode_cursor
from pgsimple.keyset.params import KeysetParam, NullParam, SeekParam, SliceParam, WhereParam
from pgsimple.keyset.query import DEFAULT_PAGE_SIZE, Keyset

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "Keyset",
    "KeysetParam",
    "NullParam",
    "SeekParam",
    "SliceParam",
    "WhereParam",
    "decode_cursor",
    "encode_cursor",
]
