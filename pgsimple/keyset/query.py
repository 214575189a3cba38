from __future__ import annotations

import copy
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from loguru import logger

from pgsimple.errors import InvalidQueryError
from pgsimple.keyset.conditions import (
    SqlConditions,
    comparable_seeks,
    order_clause,
    param_to_sql,
    seek_keys_to_sql,
    seek_to_sql,
)
from pgsimple.keyset.cursor import decode_cursor, encode_cursor
from pgsimple.keyset.params import (
    KeysetParam,
    NullParam,
    SeekParam,
    SliceParam,
    WhereParam,
    grouped,
    seek_params,
)
from pgsimple.sql import column_name, quote_ident
from pgsimple.types import AfterOrBefore, ConnectionResult, Edge, PageInfo, Row, Serializable

if TYPE_CHECKING:
    from pgsimple.database import Database

DEFAULT_PAGE_SIZE = 20


def _page_size(value: Any, names: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise InvalidQueryError(f"expected {names} to be a positive number, got {value!r}")
    return value


class Keyset:
    """Paginated queries over one table.

    Builder calls configure the keyset; ``query`` runs it and returns the rows
    as edges, each carrying a cursor that resumes the query from that row::

        keyset = db.get_table("pagination_land").start("seq", first=12)
        result = await keyset.query()

        # later, when the client wants more results
        keyset = db.get_table("pagination_land").continue_(cursor, prev=12)
        result = await keyset.query()

    ``raw_*`` snippets and ``select`` columns are trusted SQL and are never
    written into cursors.
    """

    def __init__(self, db: Database, table: str):
        self.db = db
        self.table = table
        self.params: list[KeysetParam] = []
        self.joins: list[str] = []
        self.additional = SqlConditions()
        self.group_by: str | None = None
        self.direction: AfterOrBefore = "after"
        self.limit_results = DEFAULT_PAGE_SIZE

    @property
    def seek_params(self) -> list[SeekParam]:
        return seek_params(self.params)

    def raw_join(self, sql: str) -> "Keyset":
        """Add a long form join (``JOIN x ON y``)."""
        self.joins.append(sql)
        return self

    def seek(
        self,
        field: str,
        value: Serializable | None = None,
        *,
        desc: bool = False,
        search_query: str | None = None,
        maybe_equal: Serializable | None = None,
    ) -> "Keyset":
        self.params.append(
            SeekParam(
                field=field,
                value=value,
                desc=desc,
                search_query=search_query or None,
                maybe_equal=maybe_equal,
            )
        )
        return self

    def limit(self, limit: int) -> "Keyset":
        self.limit_results = limit
        return self

    def where(self, field: str, value: Any) -> "Keyset":
        self.params.append(WhereParam(field=field, value=value))
        return self

    def in_(self, field: str, values: Iterable[Serializable]) -> "Keyset":
        self.params.append(SliceParam(field=field, values=tuple(values)))
        return self

    def intersect(self, field: str, values: Iterable[Serializable]) -> "Keyset":
        self.params.append(SliceParam(field=field, values=tuple(values), overlap=True))
        return self

    def is_null(self, field: str) -> "Keyset":
        self.params.append(NullParam(field=field, is_null=True))
        return self

    def not_null(self, field: str) -> "Keyset":
        self.params.append(NullParam(field=field, is_null=False))
        return self

    def select(self, columns: str | Iterable[str]) -> "Keyset":
        if isinstance(columns, str):
            self.additional.select.append(columns)
        else:
            self.additional.select.extend(columns)
        return self

    def raw_where(self, condition: str) -> "Keyset":
        self.additional.where.append(condition)
        return self

    def raw_order(self, condition: str) -> "Keyset":
        self.additional.order.append(condition)
        return self

    def raw_group_by(self, condition: str) -> "Keyset":
        self.group_by = condition
        return self

    def after(self) -> "Keyset":
        self.direction = "after"
        return self

    def before(self) -> "Keyset":
        self.direction = "before"
        return self

    def start(
        self,
        field: str,
        *,
        search_query: str | None = None,
        desc: bool | None = None,
        first: int | None = None,
        last: int | None = None,
        default_last: bool = False,
    ) -> "Keyset":
        """Set up the first page.

        Without an explicit ``desc``, results come back descending when a
        search query is given together with ``first`` (most relevant first),
        or when no search query is given and ``last`` is (most recent first).
        """
        if first is not None and last is not None:
            raise InvalidQueryError("cannot specify both first and last")
        if first is None and last is None:
            if default_last:
                last = DEFAULT_PAGE_SIZE
            else:
                first = DEFAULT_PAGE_SIZE

        self.limit(_page_size(first if first is not None else last, "first or last"))

        if desc is None:
            if search_query:
                desc = first is not None
            else:
                desc = last is not None

        return self.seek(field, desc=desc, search_query=search_query)

    def continue_(
        self, cursor: str, *, next: int | None = None, prev: int | None = None
    ) -> "Keyset":
        """Resume from ``cursor``, ``next`` rows after it or ``prev`` rows before it."""
        if next is not None and prev is not None:
            raise InvalidQueryError("cannot specify both next and prev")
        self.from_cursor(cursor)
        if next is None and prev is None:
            next = DEFAULT_PAGE_SIZE

        if next is not None:
            self.limit_results = _page_size(next, "next or prev")
            self.direction = "after"
        else:
            self.limit_results = _page_size(prev, "next or prev")
            self.direction = "before"
        return self

    def to_cursor(self) -> str:
        return encode_cursor(self.params)

    def from_cursor(self, cursor: str) -> "Keyset":
        self.params = decode_cursor(cursor)
        return self

    def clone(self) -> "Keyset":
        new = copy.copy(self)
        new.params = list(self.params)
        new.joins = list(self.joins)
        new.additional = SqlConditions(
            select=list(self.additional.select),
            where=list(self.additional.where),
            order=list(self.additional.order),
        )
        return new

    def new_from_row(self, row: Mapping[str, Any]) -> "Keyset":
        """A copy of this keyset whose seek values are taken from ``row``."""
        new = self.clone()
        new.params = [
            replace(p, value=row.get("sml" if p.search_query else column_name(p.field)))
            if isinstance(p, SeekParam)
            else p
            for p in self.params
        ]
        return new

    def conditions(self) -> SqlConditions:
        terms = SqlConditions(where=list(self.additional.where))
        keys = comparable_seeks(self.seek_params)
        for param in grouped(self.params):
            if param in keys:
                terms = terms.extend(seek_to_sql(param, self.table, self.direction, compare=False))
            else:
                terms = terms.extend(param_to_sql(param, self.table, self.direction))
        if keys:
            terms.where.append(seek_keys_to_sql(keys, self.table, self.direction))
        return terms

    def _from_sql(self) -> str:
        return "FROM " + " ".join([quote_ident(self.table), *self.joins])

    def to_sql(self) -> str:
        terms = self.conditions()
        select = self.additional.select or [f"{quote_ident(self.table)}.*"]
        order = order_clause(terms.order, self.additional.order)

        lines = [f"SELECT {', '.join([*select, *terms.select])}", self._from_sql()]
        if terms.where:
            lines.append(f"WHERE {' AND '.join(terms.where)}")
        if self.group_by:
            lines.append(f"GROUP BY {self.group_by}")
        if order:
            lines.append(f"ORDER BY {', '.join(order)}")
        lines.append(f"LIMIT {int(self.limit_results)}")
        return "\n".join(lines)

    def total_count_sql(self) -> str:
        """Count every row matching the filters, wherever the seek point is."""
        where = list(self.additional.where)
        for param in grouped(self.params):
            if not isinstance(param, SeekParam):
                where.extend(param_to_sql(param, self.table, self.direction).where)

        lines = ["SELECT count(*)::int AS count", self._from_sql()]
        if where:
            lines.append(f"WHERE {' AND '.join(where)}")
        return "\n".join(lines)

    def rows_to_edges(self, rows: list[Row]) -> list[Edge]:
        return [{"node": row, "cursor": self.new_from_row(row).to_cursor()} for row in rows]

    async def query(self) -> ConnectionResult:
        sql = self.to_sql()
        async with self.db.transact() as conn:
            rows = [dict(r) for r in await conn.fetch(sql)]
            if self.direction == "before":
                rows.reverse()
            page_info = await self.page_info(rows, conn)

        logger.debug(
            f"keyset query on {self.table} returned {len(rows)} rows, page info: {page_info}"
        )
        return {"edges": self.rows_to_edges(rows), "page_info": page_info}

    async def _probe(self, conn, row: Row, direction: AfterOrBefore) -> bool:
        keyset = self.new_from_row(row)
        seeks = keyset.seek_params
        # the row has no seek value to page from: skip the query entirely
        if not seeks or seeks[0].value is None:
            return False

        keyset.direction = direction
        keyset.limit_results = 1
        return len(await conn.fetch(keyset.to_sql())) > 0

    async def page_info(self, rows: list[Row], conn) -> PageInfo:
        """Count and neighbour checks, run on ``conn`` one after another.

        ``conn`` is the connection the page was read with: borrowing more
        connections from the pool while holding it can exhaust the pool.
        """
        total = await conn.fetchval(self.total_count_sql())
        if not rows:
            return {"total_count": total or 0, "has_next_page": False, "has_prev_page": False}

        has_next = await self._probe(conn, rows[-1], "after")
        has_prev = await self._probe(conn, rows[0], "before")
        return {
            "total_count": total or 0,
            "has_next_page": has_next,
            "has_prev_page": has_prev,
        }
