"""Shared key/value counter stores backing the record generators.

Every generator instance (one per worker thread) talks to the same store. Only
``increment`` has to be atomic: it is what hands out dense storage slots and
insert sequence ids without collisions.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

import pymysql
from pymysql.cursors import DictCursor

from .errors import CounterMissingError, StoreError
from .schema import GeoSchema

DEFAULT_COUNTER_TABLE = "geo_counters"


class CounterStore(ABC):
    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when the key is absent."""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def increment(self, key: str, step: int) -> int:
        """Atomically add ``step`` to an existing integer counter and return the new value."""

    def add(self, key: str, value: str) -> bool:
        """Set ``key`` only if it is absent. Returns True when the value was written."""
        if self.get(key) is not None:
            return False
        self.set(key, value)
        return True

    def close(self) -> None:
        pass


class MemoryCounterStore(CounterStore):
    """In-process store shared by the worker threads of one harness process."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = str(value)

    def add(self, key: str, value: str) -> bool:
        with self._lock:
            if key in self._data:
                return False
            self._data[key] = str(value)
            return True

    def increment(self, key: str, step: int) -> int:
        with self._lock:
            current = self._data.get(key)
            if current is None:
                raise CounterMissingError(key)
            try:
                new_value = int(current) + step
            except ValueError as exc:
                raise StoreError(f"counter {key!r} holds non-integer value {current!r}") from exc
            self._data[key] = str(new_value)
            return new_value

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


@dataclass
class DBConfig:
    host: str = "127.0.0.1"
    port: int = 3306
    user: str = "root"
    password: Optional[str] = None
    socket: Optional[str] = None
    db: Optional[str] = None

    @property
    def target(self) -> str:
        return self.socket or f"{self.host}:{self.port}"


def connect_mysql(
    cfg: DBConfig,
    autocommit: bool = True,
    *,
    connect_timeout: Optional[int] = None,
) -> pymysql.connections.Connection:
    params: Dict[str, object] = {
        "user": cfg.user,
        "password": cfg.password or "",
        "charset": "utf8mb4",
        "autocommit": autocommit,
        "cursorclass": DictCursor,
    }
    if connect_timeout is not None:
        params["connect_timeout"] = connect_timeout
    if cfg.socket:
        params["unix_socket"] = cfg.socket
    else:
        params["host"] = cfg.host
        params["port"] = cfg.port
    conn = pymysql.connect(**params)
    if cfg.db:
        conn.select_db(cfg.db)
    return conn


class MySQLCounterStore(CounterStore):
    """Counter store kept in a two-column MySQL table.

    PyMySQL connections are not thread-safe, so each thread lazily opens its own
    connection. Increments use ``LAST_INSERT_ID(expr)`` so the new value is read
    back on the same connection without a second round trip racing other writers.
    """

    def __init__(
        self,
        cfg: DBConfig,
        table: str = DEFAULT_COUNTER_TABLE,
        *,
        connect_timeout: Optional[int] = 5,
    ) -> None:
        if not cfg.db:
            raise ValueError("MySQLCounterStore requires a database name")
        self.cfg = cfg
        self.table = table
        self.connect_timeout = connect_timeout
        self._local = threading.local()

    def _connection(self) -> pymysql.connections.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            try:
                conn = connect_mysql(self.cfg, autocommit=True, connect_timeout=self.connect_timeout)
            except pymysql.MySQLError as exc:
                raise StoreError(f"unable to connect to counter store at {self.cfg.target}: {exc}") from exc
            self._local.conn = conn
            logging.debug("Opened counter store connection to %s", self.cfg.target)
        return conn

    def ensure_table(self) -> None:
        try:
            with self._connection().cursor() as cur:
                cur.execute(
                    f"CREATE TABLE IF NOT EXISTS `{self.table}` ("
                    " k VARCHAR(255) NOT NULL PRIMARY KEY,"
                    " v LONGTEXT NOT NULL"
                    ") DEFAULT CHARACTER SET utf8mb4"
                )
        except pymysql.MySQLError as exc:
            raise StoreError(f"unable to create counter table `{self.table}`: {exc}") from exc

    def get(self, key: str) -> Optional[str]:
        try:
            with self._connection().cursor() as cur:
                cur.execute(f"SELECT v FROM `{self.table}` WHERE k = %s", (key,))
                row = cur.fetchone()
        except pymysql.MySQLError as exc:
            raise StoreError(f"get {key!r} failed: {exc}") from exc
        if not row:
            return None
        return row["v"]

    def set(self, key: str, value: str) -> None:
        try:
            with self._connection().cursor() as cur:
                cur.execute(
                    f"INSERT INTO `{self.table}` (k, v) VALUES (%s, %s)"
                    " ON DUPLICATE KEY UPDATE v = VALUES(v)",
                    (key, str(value)),
                )
        except pymysql.MySQLError as exc:
            raise StoreError(f"set {key!r} failed: {exc}") from exc

    def add(self, key: str, value: str) -> bool:
        try:
            with self._connection().cursor() as cur:
                cur.execute(
                    f"INSERT IGNORE INTO `{self.table}` (k, v) VALUES (%s, %s)",
                    (key, str(value)),
                )
                return cur.rowcount == 1
        except pymysql.MySQLError as exc:
            raise StoreError(f"add {key!r} failed: {exc}") from exc

    def increment(self, key: str, step: int) -> int:
        try:
            with self._connection().cursor() as cur:
                cur.execute(
                    f"UPDATE `{self.table}` SET v = LAST_INSERT_ID(CAST(v AS SIGNED) + %s) WHERE k = %s",
                    (int(step), key),
                )
                if cur.rowcount == 0:
                    raise CounterMissingError(key)
                cur.execute("SELECT LAST_INSERT_ID() AS v")
                row = cur.fetchone()
        except pymysql.MySQLError as exc:
            raise StoreError(f"increment {key!r} failed: {exc}") from exc
        return int(row["v"])

    def close(self) -> None:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            return
        self._local.conn = None
        try:
            conn.close()
        except pymysql.MySQLError as exc:
            logging.warning("Closing counter store connection failed: %s", exc)


def seed_counters(store: CounterStore, schema: GeoSchema, total_docs: int, insert_start: int = 0) -> None:
    """Initialize the counters a fresh store needs; existing values are left alone."""

    store.add(schema.counter_key(schema.total_count_counter), str(total_docs))
    store.add(schema.counter_key(schema.insert_counter), str(total_docs + 1 + insert_start))
    store.add(schema.counter_key(schema.stored_count_counter), "0")
