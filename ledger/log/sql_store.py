"""
Relational ledger store (SQLAlchemy).

One row per event. The database enforces the per-subject chain shape:
- unique (subject_id, sequence): two writers can never claim one position
- unique (subject_id, prev_hash): two events can never fork from one parent

An append takes a per-subject lock, reads the tail, seals the next event and
inserts it in a single transaction. PostgreSQL uses a transaction-scoped
advisory lock keyed by the subject; SQLite takes its database write lock up
front with BEGIN IMMEDIATE. On other databases the unique constraints alone
arbitrate, and a losing racer gets a conflict and retries.
"""

from typing import Iterator, Optional

from sqlalchemy import (
    BigInteger,
    Column,
    Integer,
    LargeBinary,
    String,
    UniqueConstraint,
    create_engine,
    func,
    select,
    text,
)
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError as SqlIntegrityError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from ..core.clock import format_timestamp, parse_timestamp
from ..core.errors import CorruptRecord, StorageUnavailable
from ..core.events import EventDraft, LedgerEvent
from ..core.ids import normalize_subject_id, subject_id_bytes
from ..logging_config import get_logger
from .integrity import GENESIS_HASH
from .store import AppendResult, LedgerStore

Base = declarative_base()

READ_BATCH_SIZE = 500

# Seconds a SQLite writer waits for the database lock
SQLITE_BUSY_TIMEOUT = 30


class LedgerEventRow(Base):
    """Append-only ledger row; no code path updates or deletes one."""

    __tablename__ = "ledger_events"
    __table_args__ = (
        UniqueConstraint("subject_id", "sequence", name="uq_ledger_subject_sequence"),
        UniqueConstraint("subject_id", "prev_hash", name="uq_ledger_subject_prev_hash"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    subject_id = Column(String(36), nullable=False, index=True)
    sequence = Column(BigInteger, nullable=False)
    event_type = Column(String(32), nullable=False)
    payload = Column(LargeBinary, nullable=False)
    occurred_at = Column(String(40), nullable=False)  # ISO-8601 UTC, microseconds
    recorded_at = Column(String(40), nullable=False)
    prev_hash = Column(String(64), nullable=False)
    self_hash = Column(String(64), nullable=False, index=True)


def _row_from_event(event: LedgerEvent) -> LedgerEventRow:
    return LedgerEventRow(
        subject_id=event.subject_id,
        sequence=event.sequence,
        event_type=event.event_type,
        payload=event.payload,
        occurred_at=format_timestamp(event.occurred_at),
        recorded_at=format_timestamp(event.recorded_at),
        prev_hash=event.prev_hash.hex(),
        self_hash=event.self_hash.hex(),
    )


def _event_from_row(row: LedgerEventRow) -> LedgerEvent:
    try:
        return LedgerEvent(
            subject_id=row.subject_id,
            sequence=int(row.sequence),
            event_type=row.event_type,
            payload=bytes(row.payload),
            occurred_at=parse_timestamp(row.occurred_at),
            recorded_at=parse_timestamp(row.recorded_at),
            prev_hash=bytes.fromhex(row.prev_hash),
            self_hash=bytes.fromhex(row.self_hash),
        )
    except (TypeError, ValueError) as ex:
        raise CorruptRecord(f"unreadable ledger row id={row.id}: {ex}") from ex


class SqlLedgerStore(LedgerStore):
    """
    Transactional ledger store on any SQLAlchemy-supported database.

    Production deployments point this at PostgreSQL; tests use SQLite files.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        engine=None,
        create_schema: bool = True,
        **kwargs,
    ) -> None:
        """
        Initialize SQL ledger store.

        Args:
            url: Database URL (ignored when engine is given)
            engine: Existing SQLAlchemy engine
            create_schema: Create the ledger_events table if missing

        Raises:
            StorageUnavailable: If the database cannot be reached
        """
        super().__init__(**kwargs)
        if engine is None:
            if not url:
                raise ValueError("SqlLedgerStore requires url or engine")
            connect_args = {}
            if make_url(url).get_backend_name() == "sqlite":
                connect_args["timeout"] = SQLITE_BUSY_TIMEOUT
            engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)
        self.engine = engine
        self.Session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

        if create_schema:
            try:
                Base.metadata.create_all(engine)
            except SQLAlchemyError as e:
                raise StorageUnavailable(f"Failed to create ledger schema: {e}") from e

    @staticmethod
    def _tail_row(session, subject_id: str) -> Optional[LedgerEventRow]:
        stmt = (
            select(LedgerEventRow)
            .where(LedgerEventRow.subject_id == subject_id)
            .order_by(LedgerEventRow.sequence.desc())
            .limit(1)
        )
        return session.scalars(stmt).first()

    def _lock_subject(self, session, subject_id: str) -> None:
        """Serialize appends to one subject until the transaction ends."""
        dialect = self.engine.dialect.name
        if dialect == "postgresql":
            key = int.from_bytes(subject_id_bytes(subject_id)[:8], "big", signed=True)
            session.execute(select(func.pg_advisory_xact_lock(key)))
        elif dialect == "sqlite":
            # Must be the first statement of the transaction
            session.execute(text("BEGIN IMMEDIATE"))

    def try_append(
        self, draft: EventDraft, expected_prev_hash: Optional[bytes] = None
    ) -> AppendResult:
        """
        Append inside one transaction holding the subject lock.

        Raises:
            StorageUnavailable: If the database fails
        """
        try:
            with self.Session.begin() as session:
                self._lock_subject(session, draft.subject_id)
                row = self._tail_row(session, draft.subject_id)
                tail = _event_from_row(row) if row is not None else None
                observed = tail.self_hash if tail is not None else GENESIS_HASH
                if expected_prev_hash is not None and expected_prev_hash != observed:
                    return self._conflict(draft, observed)

                event = self._seal(draft, tail)
                session.add(_row_from_event(event))
        except SqlIntegrityError as e:
            get_logger(__name__, subject_id=draft.subject_id).info(
                "Unique constraint rejected append: %s", e.orig
            )
            winner = self.get_latest(draft.subject_id)
            return self._conflict(draft, winner.self_hash if winner else GENESIS_HASH)
        except SQLAlchemyError as e:
            raise StorageUnavailable(f"Failed to append event: {e}") from e

        return self._committed(draft, event)

    def list_events(
        self,
        subject_id,
        from_sequence: int = 1,
        to_sequence: Optional[int] = None,
    ) -> Iterator[LedgerEvent]:
        """
        Stream events in sequence order, READ_BATCH_SIZE rows at a time.

        Yields:
            Events in sequence order
        """
        subject_id, from_sequence, to_sequence = self._range(subject_id, from_sequence, to_sequence)
        stmt = (
            select(LedgerEventRow)
            .where(LedgerEventRow.subject_id == subject_id)
            .where(LedgerEventRow.sequence >= from_sequence)
            .order_by(LedgerEventRow.sequence.asc())
            .execution_options(yield_per=READ_BATCH_SIZE)
        )
        if to_sequence is not None:
            stmt = stmt.where(LedgerEventRow.sequence <= to_sequence)

        try:
            with self.Session() as session:
                for row in session.scalars(stmt):
                    yield _event_from_row(row)
        except SQLAlchemyError as e:
            raise StorageUnavailable(f"Failed to read events: {e}") from e

    def get_latest(self, subject_id) -> Optional[LedgerEvent]:
        subject_id = normalize_subject_id(subject_id)
        try:
            with self.Session() as session:
                row = self._tail_row(session, subject_id)
                return _event_from_row(row) if row is not None else None
        except SQLAlchemyError as e:
            raise StorageUnavailable(f"Failed to read tail: {e}") from e
