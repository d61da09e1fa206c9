# Overview: Decides whether sale/purchase batches run inside one DB transaction.

"""
Consistency Strategy

A batch (one sale or one purchase) touches several product rows and then
inserts its parent record. Two ways of writing it exist:

- TRANSACTIONAL: every write is flushed into one transaction and committed
  once. Any failure rolls all of it back.
- DIRECT: every product write is committed as soon as it is made. A
  failure part-way leaves earlier items applied.

The transactional path is used only when DB_TRANSACTIONS is enabled AND
the backend topology supports it. Detection order:

1. live topology reported by the bound engine (server dialects)
2. configured replica set name (DATABASE_REPLICA_SET)
3. a "replicaSet=" marker in the database URL
4. otherwise: "Single", unsupported

If the backend still refuses the transaction at runtime, the batch is
re-run on the direct path. A bill-id replay guard runs first so a batch
that did commit before the refusal is returned instead of applied twice.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Protocol, TypeVar

from flask import Flask, current_app
from sqlalchemy import text
from sqlalchemy.exc import NotSupportedError

from ..extensions import db
from .concurrency import run_with_retry


T = TypeVar("T")

TOPOLOGY_SINGLE = "Single"
TOPOLOGY_SERVER = "Server"
TOPOLOGY_REPLICA_SET = "ReplicaSet"

# Dialects that talk to a database server able to report its own capabilities.
SERVER_DIALECTS = {"postgresql", "mysql", "mariadb", "mssql", "oracle"}

REPLICA_SET_MARKER = "replicaSet="


class TransactionUnsupportedError(Exception):
    """Raised when the backend refuses to run a multi-statement transaction."""


@dataclass(frozen=True)
class TopologyReport:
    topology: str
    source: str  # live | replica_set_config | connection_string | default

    @property
    def supports_transactions(self) -> bool:
        return self.topology != TOPOLOGY_SINGLE


def _live_topology(engine) -> str | None:
    """
    Topology as reported by the engine itself.

    Embedded SQLite has no server to ask, so it reports nothing and the
    decision falls through to configuration.
    """
    if engine is None:
        return None
    dialect = getattr(getattr(engine, "dialect", None), "name", None)
    if not dialect:
        return None
    if dialect in SERVER_DIALECTS:
        return TOPOLOGY_SERVER
    return None


def detect_topology(
    engine=None,
    *,
    replica_set_name: str | None = None,
    database_url: str | None = None,
) -> TopologyReport:
    live = _live_topology(engine)
    if live and live != TOPOLOGY_SINGLE:
        return TopologyReport(live, "live")

    if replica_set_name:
        return TopologyReport(TOPOLOGY_REPLICA_SET, "replica_set_config")

    if isinstance(database_url, str) and REPLICA_SET_MARKER in database_url:
        return TopologyReport(TOPOLOGY_REPLICA_SET, "connection_string")

    return TopologyReport(TOPOLOGY_SINGLE, "default")


class UnitOfWork(Protocol):
    """Write scope handed to every repository call made for one batch."""

    transactional: bool

    @property
    def session(self): ...

    def begin(self) -> None: ...

    def add(self, obj: Any) -> None: ...

    def checkpoint(self) -> None: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


class DirectUnitOfWork:
    """No transaction scope: each checkpoint is committed immediately."""

    transactional = False

    def __init__(self, session=None):
        self._session = session if session is not None else db.session

    @property
    def session(self):
        return self._session

    def begin(self) -> None:
        pass

    def add(self, obj: Any) -> None:
        self._session.add(obj)

    def checkpoint(self) -> None:
        self._session.commit()

    def commit(self) -> None:
        self._session.commit()

    def rollback(self) -> None:
        self._session.rollback()


class TransactionalUnitOfWork:
    """All writes of the batch are flushed into one transaction, committed once."""

    transactional = True

    def __init__(self, session=None):
        self._session = session if session is not None else db.session

    @property
    def session(self):
        return self._session

    def begin(self) -> None:
        try:
            if self._session.get_bind().dialect.name == "sqlite":
                # Take the write lock up front so concurrent batches serialize
                self._session.execute(text("BEGIN IMMEDIATE"))
        except NotSupportedError as exc:
            raise TransactionUnsupportedError(str(exc)) from exc

    def add(self, obj: Any) -> None:
        self._session.add(obj)

    def checkpoint(self) -> None:
        try:
            self._session.flush()
        except NotSupportedError as exc:
            raise TransactionUnsupportedError(str(exc)) from exc

    def commit(self) -> None:
        try:
            self._session.commit()
        except NotSupportedError as exc:
            raise TransactionUnsupportedError(str(exc)) from exc

    def rollback(self) -> None:
        self._session.rollback()


class ReplayGuard(Protocol):
    """Idempotency hook keyed by bill id, consulted before a fallback re-run."""

    def arm(self) -> None: ...

    def recover(self) -> Any | None: ...


class ConsistencyStrategy:
    def __init__(
        self,
        *,
        enabled: bool,
        replica_set_name: str | None = None,
        database_url: str | None = None,
        engine_getter: Callable[[], Any] | None = None,
    ):
        self.enabled = enabled
        self.replica_set_name = replica_set_name
        self.database_url = database_url
        self._engine_getter = engine_getter or (lambda: db.engine)

    @classmethod
    def from_app(cls, app: Flask) -> "ConsistencyStrategy":
        return cls(
            enabled=bool(app.config.get("DB_TRANSACTIONS")),
            replica_set_name=app.config.get("DATABASE_REPLICA_SET"),
            database_url=app.config.get("SQLALCHEMY_DATABASE_URI"),
        )

    def topology(self) -> TopologyReport:
        try:
            engine = self._engine_getter()
        except RuntimeError:
            # No app context / engine not bound yet
            engine = None
        return detect_topology(
            engine,
            replica_set_name=self.replica_set_name,
            database_url=self.database_url,
        )

    def use_transactions(self) -> bool:
        if not self.enabled:
            return False
        report = self.topology()
        current_app.logger.debug(
            "DB topology %s (from %s); transactions %s",
            report.topology,
            report.source,
            "supported" if report.supports_transactions else "unsupported",
        )
        return report.supports_transactions

    def _run_once(self, batch: Callable[[UnitOfWork], T], uow: UnitOfWork) -> T:
        uow.begin()
        try:
            result = batch(uow)
            uow.commit()
        except BaseException:
            uow.rollback()
            raise
        return result

    def run(
        self,
        batch: Callable[[UnitOfWork], T],
        *,
        guard: ReplayGuard | None = None,
        label: str = "batch",
    ) -> T:
        """
        Execute batch(uow) under the strategy's chosen unit of work.

        Transactional attempts are retried on lock / version conflicts since a
        rollback leaves nothing behind. Direct attempts are run once.
        """
        if not self.use_transactions():
            return self._run_once(batch, DirectUnitOfWork())

        if guard is not None:
            guard.arm()

        try:
            return run_with_retry(lambda: self._run_once(batch, TransactionalUnitOfWork()), label=label)
        except TransactionUnsupportedError:
            current_app.logger.warning(
                "DB transactions unsupported; retrying %s without transaction support", label
            )

        if guard is not None:
            replayed = guard.recover()
            if replayed is not None:
                current_app.logger.warning(
                    "%s already committed before the transaction was refused; returning it", label
                )
                return replayed

        return self._run_once(batch, DirectUnitOfWork())
