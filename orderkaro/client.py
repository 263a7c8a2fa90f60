"""
Table-oriented data client over SQLAlchemy.

Every page controller talks to the database through this client: it builds
filtered queries against a table name, returns plain dict rows, classifies
failures into RemoteError kinds and reports each operation's timing to the
connection monitor.
"""
import logging
import time
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Union

from sqlalchemy import and_, func, or_, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from orderkaro.database import create_session_factory, existing_tables
from orderkaro.errors import ErrorKind, RemoteError, classify_db_error, validation_error
from orderkaro.models import (
    Address, CartItem, Category, OneTimeCode, Order, OrderItem, Product, User, utcnow
)
from orderkaro.retry import RetryBackoff, retry_call

logger = logging.getLogger(__name__)

TABLES = {
    model.__tablename__: model
    for model in (User, Category, Product, CartItem, Address, Order, OrderItem, OneTimeCode)
}

READ_OPERATIONS = {"select", "single", "maybe_single", "count"}


def row_to_dict(row) -> Dict[str, Any]:
    data = {}
    for column in row.__table__.columns:
        value = getattr(row, column.key)
        if isinstance(value, datetime):
            value = value.isoformat()
        data[column.key] = value
    return data


# ============================================================================
# EXECUTION POLICIES
# ============================================================================

class ExecutionPolicy:
    """Decides how a single database operation is attempted."""

    def run(self, attempt: Callable[[], Any], operation: str) -> Any:
        raise NotImplementedError


class DirectPolicy(ExecutionPolicy):
    """Run once, no retries."""

    def run(self, attempt, operation):
        return attempt()


class RetryingPolicy(ExecutionPolicy):
    """Retry reads that failed on connectivity; writes always run once."""

    def __init__(
        self,
        backoff: RetryBackoff,
        retry_on: Iterable[ErrorKind] = (ErrorKind.NETWORK, ErrorKind.TIMEOUT),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.backoff = backoff
        self.retry_on = frozenset(retry_on)
        self._sleep = sleep

    def run(self, attempt, operation):
        if operation not in READ_OPERATIONS:
            return attempt()
        return retry_call(
            attempt,
            self.backoff,
            sleep=self._sleep,
            retry_if=lambda error: isinstance(error, RemoteError) and error.kind in self.retry_on,
        )


# ============================================================================
# QUERY BUILDER
# ============================================================================

class TableQuery:
    """Chainable filters plus one terminal operation."""

    def __init__(self, client: "DataClient", table: str, session: Optional[Session] = None):
        if table not in TABLES:
            raise validation_error(f"Unknown table '{table}'")
        self._client = client
        self._session = session
        self.table = table
        self.model = TABLES[table]
        self._filters: List[tuple] = []
        self._order: List[tuple] = []
        self._limit: Optional[int] = None

    # -- filters -------------------------------------------------------

    def _column(self, name: str):
        if name not in self.model.__table__.columns:
            raise validation_error(f"Unknown column '{self.table}.{name}'")
        return getattr(self.model, name)

    def eq(self, column: str, value: Any) -> "TableQuery":
        self._filters.append(("eq", column, value))
        return self

    def neq(self, column: str, value: Any) -> "TableQuery":
        self._filters.append(("neq", column, value))
        return self

    def gte(self, column: str, value: Any) -> "TableQuery":
        self._filters.append(("gte", column, value))
        return self

    def lte(self, column: str, value: Any) -> "TableQuery":
        self._filters.append(("lte", column, value))
        return self

    def ilike(self, column: str, pattern: str) -> "TableQuery":
        self._filters.append(("ilike", column, pattern))
        return self

    def ilike_any(self, columns: Sequence[str], pattern: str) -> "TableQuery":
        """Case-insensitive match on any of the columns."""
        self._filters.append(("ilike_any", tuple(columns), pattern))
        return self

    def in_(self, column: str, values: Iterable[Any]) -> "TableQuery":
        self._filters.append(("in", column, tuple(values)))
        return self

    def order(self, column: str, ascending: bool = True) -> "TableQuery":
        self._order.append((column, ascending))
        return self

    def limit(self, count: int) -> "TableQuery":
        self._limit = count
        return self

    def params(self) -> Dict[str, Any]:
        """The filter set as a plain dict, suitable for cache keys."""
        params: Dict[str, Any] = {}
        for op, column, value in self._filters:
            name = ",".join(column) if isinstance(column, tuple) else column
            params[f"{op}:{name}"] = list(value) if isinstance(value, tuple) else value
        if self._order:
            params["order"] = [f"{c}:{'asc' if asc else 'desc'}" for c, asc in self._order]
        if self._limit is not None:
            params["limit"] = self._limit
        return params

    def _where(self):
        clauses = []
        for op, column, value in self._filters:
            if op == "ilike_any":
                clauses.append(or_(*[self._column(c).ilike(value) for c in column]))
                continue
            col = self._column(column)
            if op == "eq":
                clauses.append(col.is_(None) if value is None else col == value)
            elif op == "neq":
                clauses.append(col != value)
            elif op == "gte":
                clauses.append(col >= value)
            elif op == "lte":
                clauses.append(col <= value)
            elif op == "ilike":
                clauses.append(col.ilike(value))
            elif op == "in":
                clauses.append(col.in_(value))
        return clauses

    def _statement(self):
        stmt = select(self.model).where(*self._where())
        for column, ascending in self._order:
            col = self._column(column)
            stmt = stmt.order_by(col.asc() if ascending else col.desc())
        if self._limit is not None:
            stmt = stmt.limit(self._limit)
        return stmt

    def _require_filter(self, operation: str) -> None:
        if not self._filters:
            raise validation_error(f"{operation} on '{self.table}' requires a filter")

    def _check_values(self, values: Dict[str, Any]) -> None:
        for key in values:
            self._column(key)

    # -- terminal operations --------------------------------------------

    def select(self) -> List[Dict[str, Any]]:
        stmt = self._statement()
        return self._client._run(
            self.table, "select",
            lambda session: [row_to_dict(r) for r in session.scalars(stmt)],
            self._session,
        )

    def maybe_single(self) -> Optional[Dict[str, Any]]:
        stmt = self._statement().limit(1)

        def work(session):
            row = session.scalars(stmt).first()
            return row_to_dict(row) if row is not None else None

        return self._client._run(self.table, "maybe_single", work, self._session)

    def single(self) -> Dict[str, Any]:
        """Exactly one row; NOT_FOUND when nothing matches."""
        stmt = self._statement().limit(1)

        def work(session):
            row = session.scalars(stmt).first()
            if row is None:
                raise RemoteError(ErrorKind.NOT_FOUND, f"No matching row in {self.table}")
            return row_to_dict(row)

        return self._client._run(self.table, "single", work, self._session)

    def count(self) -> int:
        stmt = select(func.count()).select_from(self.model).where(*self._where())
        return self._client._run(self.table, "count", lambda session: session.scalar(stmt), self._session)

    def insert(self, values: Union[Dict[str, Any], List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        rows = [values] if isinstance(values, dict) else list(values)
        for row in rows:
            self._check_values(row)

        def work(session):
            objects = [self.model(**row) for row in rows]
            session.add_all(objects)
            session.flush()
            return [row_to_dict(o) for o in objects]

        return self._client._run(self.table, "insert", work, self._session)

    def update(self, values: Dict[str, Any]) -> List[Dict[str, Any]]:
        self._require_filter("update")
        self._check_values(values)
        stmt = self._statement()

        def work(session):
            objects = list(session.scalars(stmt))
            for obj in objects:
                for key, value in values.items():
                    setattr(obj, key, value)
            session.flush()
            return [row_to_dict(o) for o in objects]

        return self._client._run(self.table, "update", work, self._session)

    def delete(self) -> int:
        self._require_filter("delete")
        stmt = self._statement()

        def work(session):
            objects = list(session.scalars(stmt))
            for obj in objects:
                session.delete(obj)
            session.flush()
            return len(objects)

        return self._client._run(self.table, "delete", work, self._session)


# ============================================================================
# CLIENT
# ============================================================================

class _Operations:
    _client: "DataClient"
    _session: Optional[Session] = None

    def table(self, name: str) -> TableQuery:
        return TableQuery(self._client, name, self._session)

    def increment_or_insert(
        self,
        table: str,
        values: Dict[str, Any],
        conflict_columns: Sequence[str],
        column: str,
    ) -> Dict[str, Any]:
        """
        Insert values, or add values[column] to the existing row that
        matches on conflict_columns, as one atomic statement.
        """
        model = TABLES[table]

        def work(session):
            dialect = session.get_bind().dialect.name
            if dialect == "postgresql":
                from sqlalchemy.dialects.postgresql import insert
            elif dialect == "sqlite":
                from sqlalchemy.dialects.sqlite import insert
            else:
                raise RemoteError(ErrorKind.DATABASE, f"Atomic upsert is not supported on {dialect}")

            stmt = insert(model).values(**values)
            updates = {column: getattr(model, column) + stmt.excluded[column]}
            if "updated_at" in model.__table__.columns:
                updates["updated_at"] = utcnow()
            stmt = stmt.on_conflict_do_update(index_elements=list(conflict_columns), set_=updates)
            session.execute(stmt)

            match = and_(*[getattr(model, c) == values[c] for c in conflict_columns])
            session.expire_all()
            row = session.scalars(select(model).where(match)).one()
            return row_to_dict(row)

        return self._client._run(table, "upsert", work, self._session)


class TransactionScope(_Operations):
    """Query builder bound to one open transaction."""

    def __init__(self, client: "DataClient", session: Session):
        self._client = client
        self._session = session


class DataClient(_Operations):
    def __init__(self, engine: Engine, monitor=None, policy: Optional[ExecutionPolicy] = None):
        self.engine = engine
        self.session_factory = create_session_factory(engine)
        self.monitor = monitor
        self.policy = policy or DirectPolicy()
        self._client = self

    @contextmanager
    def transaction(self):
        """Run several operations atomically; any error rolls all of them back."""
        start = time.perf_counter()
        try:
            with self.session_factory.begin() as session:
                yield TransactionScope(self, session)
        except RemoteError:
            raise
        except Exception as error:
            remote = classify_db_error(error)
            self._log("transaction", "commit", start, time.perf_counter(), False, remote)
            raise remote from error

    def ping(self) -> bool:
        """Lightweight connectivity check."""
        try:
            with self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except Exception as error:
            raise classify_db_error(error) from error
        return True

    def table_exists(self, name: str) -> bool:
        try:
            return name in existing_tables(self.engine)
        except Exception as error:
            raise classify_db_error(error) from error

    def _run(self, table: str, operation: str, work: Callable[[Session], Any], session: Optional[Session] = None):
        def attempt():
            start = time.perf_counter()
            try:
                if session is not None:
                    result = work(session)
                else:
                    with self.session_factory.begin() as own_session:
                        result = work(own_session)
            except RemoteError:
                raise
            except Exception as error:
                remote = classify_db_error(error)
                self._log(table, operation, start, time.perf_counter(), False, remote)
                raise remote from error
            self._log(table, operation, start, time.perf_counter(), True)
            return result

        if session is not None:
            # No retries inside an open transaction
            return attempt()
        return self.policy.run(attempt, operation)

    def _log(self, table, operation, start, end, success, error=None) -> None:
        if self.monitor is not None:
            self.monitor.log_query(table, operation, start, end, success, error)
