"""
Database utilities for the swim analysis framework.

This module provides utilities for working with DuckDB, including:
- Query execution with parameter binding
- Registering pandas frames for bulk inserts
- Transaction management
"""

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

import duckdb
import pandas as pd
from loguru import logger


def execute_query(
    conn: duckdb.DuckDBPyConnection,
    query: str,
    params: Optional[Union[Tuple[Any, ...], Dict[str, Any], List[Any]]] = None,
    fetch: bool = True,
) -> List[Dict[str, Any]]:
    """
    Execute a SQL query with parameters and return the results.

    Args:
        conn: DuckDB connection.
        query: SQL query string.
        params: Query parameters.
        fetch: Whether to fetch and return results. Set to False for INSERT, UPDATE, etc.

    Returns:
        List of dictionaries with query results.
    """
    try:
        # Run on the connection itself so statements join an open transaction
        if params:
            result = conn.execute(query, params)
        else:
            result = conn.execute(query)

        if fetch:
            column_names = [desc[0] for desc in result.description]
            return [dict(zip(column_names, row)) for row in result.fetchall()]
        return []
    except Exception as e:
        logger.error(f"Error executing query: {str(e)}")
        logger.debug(f"Query: {query}")
        logger.debug(f"Params: {params}")
        raise


def insert_frame(conn: duckdb.DuckDBPyConnection, table: str, frame: pd.DataFrame, columns: List[str]) -> int:
    """
    Insert the given columns of a DataFrame into a table.

    Args:
        conn: DuckDB connection.
        table: Target table name.
        frame: Rows to insert.
        columns: Column names, in the same order in the table and the frame.

    Returns:
        Number of rows inserted.
    """
    if frame.empty:
        return 0

    view_name = f"_{table}_incoming"
    column_list = ", ".join(columns)
    conn.register(view_name, frame[columns])
    try:
        conn.execute(f"INSERT INTO {table} ({column_list}) SELECT {column_list} FROM {view_name}")
    except Exception as e:
        logger.error(f"Error inserting {len(frame)} rows into {table}: {str(e)}")
        raise
    finally:
        conn.unregister(view_name)
    return len(frame)


@contextmanager
def transaction(conn: duckdb.DuckDBPyConnection, auto_commit: bool = True) -> Iterator[duckdb.DuckDBPyConnection]:
    """
    Run the enclosed statements in one DuckDB transaction.

    The transaction is rolled back when the block raises or when `auto_commit`
    is False. Statements must run on the yielded connection (not on a cursor) to
    take part in it.

    Example:
        with transaction(conn) as txn:
            execute_query(txn, "DELETE FROM swim_laps WHERE file_id = ?", [file_id], fetch=False)
            insert_frame(txn, "swim_laps", frame, columns)
    """
    conn.begin()
    try:
        yield conn
    except Exception:
        conn.rollback()
        raise
    if auto_commit:
        conn.commit()
    else:
        conn.rollback()
