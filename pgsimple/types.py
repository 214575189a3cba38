from typing import Any, Literal, TypedDict

Row = dict[str, Any]

# Values that survive a trip through a cursor
Serializable = int | float | str | bool

AfterOrBefore = Literal["after", "before"]

SqlFileType = Literal["idempotent", "pre", "post", "snap"]

Environment = Literal["production", "development", "test"]


class PageInfo(TypedDict):
    total_count: int
    has_next_page: bool
    has_prev_page: bool


class Edge(TypedDict):
    node: Row
    cursor: str


class ConnectionResult(TypedDict):
    edges: list[Edge]
    page_info: PageInfo


class SerializedParam(TypedDict, total=False):
    f: str  # field
    v: Any  # value, or values for slices
    d: bool  # descending
    n: bool  # null
    q: str  # search query
    m: Serializable  # maybe equal


class SerializedKeyset(TypedDict):
    s: list[SerializedParam]  # seek
    f: list[SerializedParam]  # filter in
    w: list[SerializedParam]  # where
    i: list[SerializedParam]  # filter intersect
    n: list[SerializedParam]  # filter null
