"""
Database node.

Runs one `raw`, `select`, `insert`, `update` or `delete` operation against
the database of a credential. Every statement is parameterized: table and
column names are checked against the reflected table, values and `where`
predicates are bound, and `{{ path }}` tokens in raw queries become bind
parameters.
"""

from typing import Any, Dict, List
import functools
import logging

import sqlalchemy as sa
from sqlalchemy.exc import NoSuchTableError
from sqlalchemy.ext.asyncio import AsyncConnection

from agentflow.engine.context import ExecutionContext
from agentflow.engine.errors import ConfigurationError, NotFoundError
from agentflow.engine.interpolation import bind_template, resolve_value
from agentflow.engine.models import CredentialType, DatabaseConfig, Node, NodeType, WherePredicate
from agentflow.nodes.registry import register_node


logger = logging.getLogger(__name__)


# ============================================================
# Statement building
# ============================================================

def _reflect(sync_conn: Any, name: str) -> sa.Table:
    schema, _, table_name = name.rpartition(".")
    return sa.Table(table_name, sa.MetaData(), autoload_with=sync_conn, schema=schema or None)


async def reflect_table(conn: AsyncConnection, name: str) -> sa.Table:
    """Load a table definition from the database."""
    try:
        return await conn.run_sync(_reflect, name)
    except NoSuchTableError as e:
        raise NotFoundError(f"table '{name}' not found") from e


def get_column(table: sa.Table, name: str) -> sa.Column:
    if name not in table.c:
        raise ConfigurationError(f"unknown column '{name}' on table '{table.name}'")
    return table.c[name]


def build_predicate(table: sa.Table, predicate: WherePredicate, variables: Dict[str, Any]) -> Any:
    """Translate one structured predicate into a bound SQL expression."""
    column = get_column(table, predicate.column)
    value = resolve_value(predicate.value, variables)
    op = predicate.operator

    if op == "eq":
        return column == value
    if op == "ne":
        return column != value
    if op == "gt":
        return column > value
    if op == "lt":
        return column < value
    if op == "gte":
        return column >= value
    if op == "lte":
        return column <= value
    if op == "contains":
        return column.contains(value, autoescape=True)
    if op == "starts_with":
        return column.startswith(value, autoescape=True)
    if op == "ends_with":
        return column.endswith(value, autoescape=True)
    if op == "in":
        return column.in_(value if isinstance(value, (list, tuple)) else [value])
    if op == "is_null":
        return column.is_(None)
    if op == "not_null":
        return column.is_not(None)
    raise ConfigurationError(f"unknown where operator: {op}")


def build_where(table: sa.Table, config: DatabaseConfig, variables: Dict[str, Any]) -> Any:
    """AND of all predicates, or None without predicates."""
    clauses = [build_predicate(table, p, variables) for p in config.predicates]
    if not clauses:
        return None
    return sa.and_(*clauses)


def bound_values(table: sa.Table, config: DatabaseConfig, variables: Dict[str, Any]) -> Dict[str, Any]:
    return {
        get_column(table, name).name: resolve_value(value, variables)
        for name, value in config.values.items()
    }


def rows_result(result: Any) -> Dict[str, Any]:
    rows: List[Dict[str, Any]] = [dict(row) for row in result.mappings()]
    return {"rows": rows, "count": len(rows)}


# ============================================================
# Operations
# ============================================================

async def execute_raw(conn: AsyncConnection, config: DatabaseConfig, variables: Dict[str, Any]) -> Dict[str, Any]:
    query, params = bind_template(config.query, variables)
    params.update(resolve_value(config.params, variables))
    result = await conn.execute(sa.text(query), params)
    if result.returns_rows:
        return rows_result(result)
    return {"rows_affected": result.rowcount}


async def execute_select(conn: AsyncConnection, config: DatabaseConfig, variables: Dict[str, Any]) -> Dict[str, Any]:
    table = await reflect_table(conn, config.table)
    if config.columns:
        stmt = sa.select(*[get_column(table, c) for c in config.columns])
    else:
        stmt = sa.select(table)

    where = build_where(table, config, variables)
    if where is not None:
        stmt = stmt.where(where)
    if config.limit and config.limit > 0:
        stmt = stmt.limit(config.limit)

    return rows_result(await conn.execute(stmt))


async def execute_insert(conn: AsyncConnection, config: DatabaseConfig, variables: Dict[str, Any]) -> Dict[str, Any]:
    table = await reflect_table(conn, config.table)
    stmt = sa.insert(table).values(bound_values(table, config, variables))

    if not conn.dialect.insert_returning:
        await conn.execute(stmt)
        return {"inserted": True}

    result = await conn.execute(stmt.returning(*table.c))
    row = result.mappings().first()
    return {"inserted": dict(row) if row is not None else True}


async def execute_update(conn: AsyncConnection, config: DatabaseConfig, variables: Dict[str, Any]) -> Dict[str, Any]:
    table = await reflect_table(conn, config.table)
    where = build_where(table, config, variables)
    if where is None:
        raise ConfigurationError("where clause required for update")
    stmt = sa.update(table).where(where).values(bound_values(table, config, variables))
    result = await conn.execute(stmt)
    return {"rows_affected": result.rowcount}


async def execute_delete(conn: AsyncConnection, config: DatabaseConfig, variables: Dict[str, Any]) -> Dict[str, Any]:
    table = await reflect_table(conn, config.table)
    where = build_where(table, config, variables)
    if where is None:
        raise ConfigurationError("where clause required for delete")
    result = await conn.execute(sa.delete(table).where(where))
    return {"rows_affected": result.rowcount}


OPERATIONS = {
    "raw": execute_raw,
    "select": execute_select,
    "insert": execute_insert,
    "update": execute_update,
    "delete": execute_delete,
}


@register_node(NodeType.DATABASE)
async def run_database(
    context: ExecutionContext,
    node: Node,
    config: DatabaseConfig
) -> Dict[str, Any]:
    """Run a database operation on a fresh connection."""
    connector = context.services.database
    if connector is None:
        raise ConfigurationError("no database connector configured")

    credential = await context.services.credentials.resolve(
        config.credential_id, CredentialType.DATABASE
    )
    operation = functools.partial(
        OPERATIONS[config.operation],
        config=config,
        variables=dict(context.variables),
    )
    logger.info(f"Database {config.operation} on {config.table or 'raw query'}")
    return await context.guard(connector.run(credential, operation))
