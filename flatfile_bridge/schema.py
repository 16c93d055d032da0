"""Table and column introspection against the connected database."""

import logging

from flatfile_bridge.errors import InvalidRequest

logger = logging.getLogger(__name__)


def quote_identifier(name):
    """Backtick-quote a table or column name for ClickHouse SQL."""
    if not isinstance(name, str) or not name:
        raise InvalidRequest(f'Invalid identifier: {name!r}')
    escaped = name.replace('\\', '\\\\').replace('`', '\\`')
    return f'`{escaped}`'


def list_tables(manager):
    with manager.session() as client:
        result = client.query('SHOW TABLES')
        return [row[0] for row in result.result_rows]


def describe_table(manager, table):
    with manager.session() as client:
        result = client.query(f'DESCRIBE TABLE {quote_identifier(table)}')
        return [row[0] for row in result.result_rows]


def build_projection(manager, table, columns):
    """Quoted SELECT list for ``columns``, or ``*`` when none are given.

    Selected columns must exist in the table; the names come from the caller
    so they are checked against DESCRIBE TABLE before reaching SQL.
    """
    if not columns:
        return '*'
    if isinstance(columns, str) or not all(isinstance(col, str) for col in columns):
        raise InvalidRequest(f'Columns for {table!r} must be a list of names')
    known = set(describe_table(manager, table))
    unknown = [col for col in columns if col not in known]
    if unknown:
        raise InvalidRequest(f'Columns not found in table {table!r}: {unknown}')
    return ', '.join(quote_identifier(col) for col in columns)


def preview_rows(manager, table, columns=None, limit=100):
    """First ``limit`` rows of ``table`` as a list of dicts."""
    manager.require()
    projection = build_projection(manager, table, columns)
    query = f'SELECT {projection} FROM {quote_identifier(table)} LIMIT {int(limit)}'
    logger.debug('Preview query: %s', query)
    with manager.session() as client:
        return list(client.query(query).named_results())
