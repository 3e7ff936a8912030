from __future__ import annotations

import json
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import mysql.connector
from mysql.connector import errorcode

from .connection import DatabaseConnection


@contextmanager
def db_cursor(conn_factory: DatabaseConnection, *, dictionary: bool = True):
    conn = conn_factory.connect()
    try:
        cur = conn.cursor(dictionary=dictionary)
        try:
            yield conn, cur
            conn.commit()
        finally:
            cur.close()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def fetchone(cur) -> Optional[Dict[str, Any]]:
    row = cur.fetchone()
    return row if row else None


def fetchall(cur) -> List[Dict[str, Any]]:
    rows = cur.fetchall()
    return list(rows or [])


def new_id() -> str:
    return str(uuid.uuid4())


def is_duplicate_key(err: Exception) -> bool:
    return isinstance(err, mysql.connector.IntegrityError) and getattr(err, "errno", None) == errorcode.ER_DUP_ENTRY


def to_json(value: Any) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, default=str, ensure_ascii=False)


def from_json(value: Any) -> Any:
    if value is None or isinstance(value, (dict, list)):
        return value
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8")
    return json.loads(value)


def in_clause(values) -> str:
    return ",".join(["%s"] * len(values))


class MySQLRepository:
    """Base for repositories that can join a caller-owned transaction.

    ``transaction()`` yields a copy of the repository bound to one connection;
    every call made through that copy commits together (or rolls back on error).
    """

    def __init__(self, conn_factory: DatabaseConnection, *, cur=None):
        self._conn_factory = conn_factory
        self._cur = cur

    @contextmanager
    def _cursor(self) -> Iterator[Any]:
        if self._cur is not None:
            yield self._cur
            return
        with db_cursor(self._conn_factory) as (_, cur):
            yield cur

    @contextmanager
    def transaction(self):
        if self._cur is not None:
            yield self
            return
        with db_cursor(self._conn_factory) as (_, cur):
            yield type(self)(self._conn_factory, cur=cur)
