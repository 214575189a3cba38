from __future__ import annotations

from dataclasses import dataclass, field

from pgsimple.keyset.params import KeysetParam, NullParam, SeekParam, SliceParam, WhereParam
from pgsimple.sql import qualify, quote_literal
from pgsimple.types import AfterOrBefore


@dataclass
class SqlConditions:
    select: list[str] = field(default_factory=list)
    where: list[str] = field(default_factory=list)
    order: list[str] = field(default_factory=list)

    def extend(self, other: "SqlConditions") -> "SqlConditions":
        return SqlConditions(
            select=self.select + other.select,
            where=self.where + other.where,
            order=self.order + other.order,
        )


def min_similarity(search_query: str) -> float:
    """Similarity floor; short queries match almost anything, so the bar is lower."""
    length = len(search_query)
    if length == 1:
        return 0.01
    if length == 2:
        return 0.05
    if length == 3:
        return 0.1
    return 0.2


def seek_operator(direction: AfterOrBefore, desc: bool) -> str:
    if direction == "after":
        return "<" if desc else ">"
    return ">" if desc else "<"


def seek_to_sql(
    param: SeekParam, table: str, direction: AfterOrBefore, compare: bool = True
) -> SqlConditions:
    """Conditions for one seek key; ``compare=False`` leaves out the value comparison."""
    op = seek_operator(direction, param.desc)
    # paging backwards walks the index the other way; the page is flipped back after fetching
    sort = "DESC" if param.desc != (direction == "before") else "ASC"
    column = qualify(param.field, table)
    conditions = SqlConditions()

    if param.maybe_equal is not None:
        equal_to = quote_literal(param.maybe_equal)
        if param.value is None or param.value == param.maybe_equal:
            conditions.where.append(f"({column} = {equal_to} OR {column} IS NULL)")
        else:
            conditions.where.append(f"{column} IS NULL")
        conditions.order.append(f"{column} {sort}")
        return conditions

    # rows where the seek field is null can not be paged through
    conditions.where.append(f"{column} IS NOT NULL")
    if param.search_query:
        similarity = f"similarity({column}, {quote_literal(param.search_query)})"
        floor = quote_literal(min_similarity(param.search_query))
        conditions.where.append(f"{similarity} > {floor}")
        if param.value is not None:
            conditions.where.append(f"{similarity} {op} {quote_literal(param.value)}")
        conditions.order.append(f"{similarity} {sort}")
        conditions.select.append(f"{similarity} AS sml")
    else:
        conditions.order.append(f"{column} {sort}")
        if compare and param.value is not None:
            conditions.where.append(f"{column} {op} {quote_literal(param.value)}")

    return conditions


def comparable_seeks(params: list[SeekParam]) -> list[SeekParam]:
    """Seek keys compared by plain column value, when there is more than one of them."""
    keys = [
        p
        for p in params
        if p.search_query is None and p.maybe_equal is None and p.value is not None
    ]
    return keys if len(keys) > 1 else []


def seek_keys_to_sql(params: list[SeekParam], table: str, direction: AfterOrBefore) -> str:
    """Compare seek keys as one tuple, most recently added key first.

    ``(a, b) > (x, y)`` expands to ``a > x OR (a = x AND b > y)`` so each key
    keeps its own sort direction.
    """
    ordered = list(reversed(params))
    branches = []
    for i, param in enumerate(ordered):
        terms = [f"{qualify(p.field, table)} = {quote_literal(p.value)}" for p in ordered[:i]]
        op = seek_operator(direction, param.desc)
        terms.append(f"{qualify(param.field, table)} {op} {quote_literal(param.value)}")
        branches.append(terms[0] if len(terms) == 1 else f"({' AND '.join(terms)})")
    return f"({' OR '.join(branches)})"


def where_to_sql(param: WhereParam, table: str) -> SqlConditions:
    column = qualify(param.field, table)
    if param.value is None:
        return SqlConditions(where=[f"{column} IS NULL"])
    return SqlConditions(where=[f"{column} = {quote_literal(param.value)}"])


def slice_to_sql(param: SliceParam, table: str) -> SqlConditions:
    column = qualify(param.field, table)
    if not param.values:
        return SqlConditions(where=["false"])
    if param.overlap:
        # array overlap: rows sharing at least one element with the values
        return SqlConditions(where=[f"{column} && ARRAY[{quote_literal(param.values)}]"])
    return SqlConditions(where=[f"{column} IN ({quote_literal(param.values)})"])


def null_to_sql(param: NullParam, table: str) -> SqlConditions:
    column = qualify(param.field, table)
    check = "IS NULL" if param.is_null else "IS NOT NULL"
    return SqlConditions(where=[f"{column} {check}"])


def param_to_sql(param: KeysetParam, table: str, direction: AfterOrBefore) -> SqlConditions:
    if isinstance(param, SeekParam):
        return seek_to_sql(param, table, direction)
    if isinstance(param, WhereParam):
        return where_to_sql(param, table)
    if isinstance(param, SliceParam):
        return slice_to_sql(param, table)
    return null_to_sql(param, table)


def order_clause(seek_orders: list[str], raw_orders: list[str]) -> list[str]:
    """The most recently added seek sorts first; caller ordering breaks remaining ties."""
    return [*reversed(seek_orders), *raw_orders]
