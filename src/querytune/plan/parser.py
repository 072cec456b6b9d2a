"""
EXPLAIN snapshot normalization.

Turns MySQL EXPLAIN output into PlanRow records.

Supports:
- Traditional EXPLAIN format (list of tabular rows)
- EXPLAIN FORMAT=JSON (query_block tree)

Traditional EXPLAIN fields used:
- table: Table name
- type: Access type (ALL, index, range, ref, eq_ref, const, system, NULL)
- key: Index actually used
- rows: Estimated rows to examine
- Extra: Additional information ("Using where; Using filesort")

Only the four Extra tokens the risk classifier understands are kept, and
they are matched with their exact spelling.

Any malformed shape is reported as PlanParseError with the offending
location in `source`.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from querytune.advisor.models import AccessType, ExtraFlag, PlanRow
from querytune.exceptions import PlanParseError

logger = logging.getLogger(__name__)

# Access types that mean "no table was read" (Impossible WHERE, no tables used).
_NO_TABLE_ACCESS = (None, "", "NULL")

# JSON row estimates, most specific first.
_JSON_ROWS_KEYS = ("rows_examined_per_scan", "rows_produced_per_join", "rows")


def parse_extra(extra: str | None, source: str | None = None) -> frozenset[ExtraFlag]:
    """
    Extract known flags from an Extra string.

    Tokens are separated by ';'. "Using index condition" and
    "Using index for group-by" are distinct tokens and do not count as
    "Using index".

    Raises:
        PlanParseError: If extra is neither None nor a string.
    """
    if extra is None:
        return frozenset()
    if not isinstance(extra, str):
        raise PlanParseError(f"Extra is not a string: {extra!r}", source=source)
    tokens = {token.strip() for token in extra.split(";")}
    return frozenset(flag for flag in ExtraFlag if flag.value in tokens)


def parse_access_type(value: Any, source: str | None = None) -> AccessType:
    """Map an EXPLAIN `type` value to AccessType."""
    try:
        return AccessType(value)
    except ValueError:
        raise PlanParseError(f"Unknown access type: {value!r}", source=source) from None


def _parse_rows(value: Any, source: str) -> int:
    if value is None:
        return 0
    try:
        rows = int(float(value))
    except (TypeError, ValueError):
        raise PlanParseError(f"Invalid rows estimate: {value!r}", source=source) from None
    if rows < 0:
        raise PlanParseError(f"Negative rows estimate: {rows}", source=source)
    return rows


def _build_row(source: str, **fields: Any) -> PlanRow:
    try:
        return PlanRow(**fields)
    except ValidationError as e:
        raise PlanParseError(f"Invalid plan row: {e}", source=source) from e


def _row_from_traditional(row: dict[str, Any], index: int) -> PlanRow | None:
    source = f"row[{index}]"
    access = row.get("type")
    if access in _NO_TABLE_ACCESS:
        logger.debug("Skipping %s without table access", source)
        return None

    table = row.get("table")
    if not table:
        raise PlanParseError("Plan row has no table", source=source)

    return _build_row(
        source,
        table=table,
        access_type=parse_access_type(access, source),
        key_used=row.get("key") or None,
        rows_estimate=_parse_rows(row.get("rows"), source),
        extra_flags=parse_extra(row.get("Extra"), source),
    )


def _row_from_json_table(
    table_data: Any,
    source: str,
    inherited: frozenset[ExtraFlag] = frozenset(),
) -> PlanRow | None:
    if not isinstance(table_data, dict):
        raise PlanParseError("JSON table entry is not an object", source=source)

    access = table_data.get("access_type")
    if access in _NO_TABLE_ACCESS:
        logger.debug("Skipping %s without table access", source)
        return None

    table = table_data.get("table_name")
    if not table:
        raise PlanParseError("JSON table entry has no table_name", source=source)

    flags = set(inherited)
    if table_data.get("using_filesort"):
        flags.add(ExtraFlag.USING_FILESORT)
    if table_data.get("using_temporary_table"):
        flags.add(ExtraFlag.USING_TEMPORARY)
    if table_data.get("attached_condition"):
        flags.add(ExtraFlag.USING_WHERE)
    if table_data.get("using_index"):
        flags.add(ExtraFlag.USING_INDEX)

    # An explicit 0 is a real estimate, not a missing one.
    rows = next(
        (table_data[key] for key in _JSON_ROWS_KEYS if table_data.get(key) is not None),
        None,
    )

    return _build_row(
        source,
        table=table,
        access_type=parse_access_type(access, source),
        key_used=table_data.get("key") or None,
        rows_estimate=_parse_rows(rows, source),
        extra_flags=frozenset(flags),
    )


def _walk_json_block(block: Any, path: str, max_depth: int) -> list[PlanRow]:
    """
    Collect table entries from a query_block, iteratively.

    ordering_operation / grouping_operation wrappers propagate their
    filesort / temporary flags down to the tables they contain.
    """
    rows: list[PlanRow] = []
    stack: list[tuple[Any, str, frozenset[ExtraFlag], int]] = [
        (block, path, frozenset(), 0)
    ]

    while stack:
        node, where, inherited, depth = stack.pop()
        if depth > max_depth:
            raise PlanParseError(
                f"JSON plan nested deeper than {max_depth} levels", source=where
            )
        if not isinstance(node, dict):
            raise PlanParseError("JSON plan node is not an object", source=where)

        flags = set(inherited)
        if node.get("using_filesort"):
            flags.add(ExtraFlag.USING_FILESORT)
        if node.get("using_temporary_table"):
            flags.add(ExtraFlag.USING_TEMPORARY)
        frozen = frozenset(flags)

        children: list[tuple[Any, str, frozenset[ExtraFlag], int]] = []

        if "table" in node:
            row = _row_from_json_table(node["table"], f"{where}.table", frozen)
            if row is not None:
                rows.append(row)

        nested = node.get("nested_loop", [])
        if not isinstance(nested, list):
            raise PlanParseError("nested_loop is not a list", source=f"{where}.nested_loop")
        for i, item in enumerate(nested):
            children.append((item, f"{where}.nested_loop[{i}]", frozen, depth + 1))

        for wrapper in ("ordering_operation", "grouping_operation", "duplicates_removal"):
            if wrapper in node:
                children.append((node[wrapper], f"{where}.{wrapper}", frozen, depth + 1))

        # Stack is LIFO: push reversed to keep document order.
        stack.extend(reversed(children))

    return rows


def parse_plan_rows(
    explain_output: dict[str, Any] | list[dict[str, Any]],
    max_depth: int = 32,
) -> list[PlanRow]:
    """
    Parse MySQL EXPLAIN output into plan rows.

    Args:
        explain_output: Traditional rows (list) or FORMAT=JSON output (dict).
        max_depth: Maximum JSON nesting to follow.

    Returns:
        PlanRow records in plan order.

    Raises:
        PlanParseError: For unrecognized formats or malformed rows.
    """
    if isinstance(explain_output, list):
        rows: list[PlanRow] = []
        for i, raw in enumerate(explain_output):
            if not isinstance(raw, dict):
                raise PlanParseError("Plan row is not an object", source=f"row[{i}]")
            row = _row_from_traditional(raw, i)
            if row is not None:
                rows.append(row)
        return rows

    if isinstance(explain_output, dict) and "query_block" in explain_output:
        return _walk_json_block(explain_output["query_block"], "query_block", max_depth)

    raise PlanParseError(
        f"Unknown EXPLAIN format: {type(explain_output).__name__}"
    )
