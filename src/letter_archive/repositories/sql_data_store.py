"""SQLAlchemy implementation of DataStore.

Incoming and outgoing letters live in two tables with the same columns
except for the counterpart (``sender``/``recipient``) and primary date
(``received_date``/``sent_date``). Notifications live in a third table.
SQLite is the default backend; any SQLAlchemy URL works.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Callable, TypeVar

from loguru import logger
from sqlalchemy import (
    Boolean,
    DateTime,
    Engine,
    Index,
    String,
    Text,
    create_engine,
    func,
    or_,
    select,
    text,
    union,
    update,
)
from sqlalchemy import delete as sql_delete
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column
from sqlalchemy.pool import StaticPool

from letter_archive.config import settings
from letter_archive.entities import (
    Attachment,
    Direction,
    FilterOp,
    Invitation,
    LetterCategory,
    LetterDraft,
    LetterEntity,
    LetterFilters,
    NotificationDraft,
    NotificationEntity,
    NotificationFilters,
    NotificationType,
    Pagination,
)
from letter_archive.errors import ArchiveError, ErrorKind
from letter_archive.utils import as_utc, utcnow

T = TypeVar("T")

# Substrings of driver messages that mark a retryable failure
TRANSIENT_PATTERNS = (
    "deadlock",
    "could not serialize access",
    "lock timeout",
    "lock wait timeout",
    "database is locked",
    "canceling statement due to statement timeout",
    "connection reset by peer",
    "connection timed out",
)

# PostgreSQL SQLSTATEs: deadlock, serialization failure, lock not available, query canceled
TRANSIENT_SQLSTATES = {"40P01", "40001", "55P03", "57014"}


def _new_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    pass


class LetterColumns:
    """Columns shared by both letter tables."""

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    letter_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    subject: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False, default="GENERAL")
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_invitation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    event_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    event_time: Mapped[str | None] = mapped_column(String(5), nullable=True)
    event_location: Mapped[str | None] = mapped_column(String(200), nullable=True)
    event_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class IncomingLetterRow(LetterColumns, Base):
    __tablename__ = "incoming_letters"

    sender: Mapped[str] = mapped_column(String(100), nullable=False)
    received_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_incoming_letters_event_date", "event_date"),)


class OutgoingLetterRow(LetterColumns, Base):
    __tablename__ = "outgoing_letters"

    recipient: Mapped[str] = mapped_column(String(100), nullable=False)
    sent_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (Index("ix_outgoing_letters_event_date", "event_date"),)


class NotificationRow(Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_id)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)
    type: Mapped[str] = mapped_column(String(10), nullable=False, default="INFO")
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


LETTER_MODELS: dict[Direction, Any] = {
    Direction.INCOMING: IncomingLetterRow,
    Direction.OUTGOING: OutgoingLetterRow,
}


def _letter_entity(direction: Direction, row: Any) -> LetterEntity:
    invitation = None
    if row.is_invitation and row.event_date is not None:
        invitation = Invitation(
            event_date=as_utc(row.event_date),
            event_time=row.event_time,
            event_location=row.event_location,
            event_notes=row.event_notes,
        )
    attachment = None
    if row.file_name and row.file_path:
        attachment = Attachment(file_name=row.file_name, file_path=row.file_path)
    return LetterEntity(
        id=row.id,
        direction=direction,
        letter_number=row.letter_number,
        subject=row.subject,
        counterpart=getattr(row, direction.counterpart_field),
        primary_date=as_utc(getattr(row, direction.date_field)),
        category=LetterCategory(row.category),
        user_id=row.user_id,
        note=row.note,
        invitation=invitation,
        attachment=attachment,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _notification_entity(row: NotificationRow) -> NotificationEntity:
    return NotificationEntity(
        id=row.id,
        title=row.title,
        message=row.message,
        type=NotificationType(row.type),
        user_id=row.user_id,
        is_read=row.is_read,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def filter_condition(op: FilterOp, columns: list[Any], value: Any) -> Any:
    """SQL expression matching ``value`` on ``columns`` with operator ``op``."""
    if isinstance(value, Enum):
        value = value.value
    column = columns[0]
    if op is FilterOp.CONTAINS:
        return or_(*(c.icontains(value, autoescape=True) for c in columns))
    if op is FilterOp.RANGE_FROM:
        return column >= value
    if op is FilterOp.RANGE_TO:
        return column <= value
    match = column.is_(value) if isinstance(value, bool) else column == value
    if op is FilterOp.EQUALS_OR_UNSET:
        return or_(match, column.is_(None))
    return match


def is_transient_db_error(error: Exception) -> bool:
    """Check if a database error is a deadlock, lock timeout or similar.

    Args:
        error: The exception raised by SQLAlchemy

    Returns:
        True if retrying the whole transaction may succeed
    """
    if isinstance(error, PoolTimeoutError):
        return True
    if isinstance(error, DBAPIError):
        if error.connection_invalidated:
            return True
        orig = error.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in TRANSIENT_SQLSTATES:
            return True
        message = str(orig if orig is not None else error).lower()
        return any(pattern in message for pattern in TRANSIENT_PATTERNS)
    return False


class SqlTransaction:
    """TransactionHandle bound to one SQLAlchemy session."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # Letters

    def find_letter(
        self, direction: Direction, letter_id: str, for_update: bool = False
    ) -> LetterEntity | None:
        model = LETTER_MODELS[direction]
        stmt = select(model).where(model.id == letter_id)
        if for_update:
            stmt = stmt.with_for_update()
        row = self._session.scalars(stmt).first()
        return _letter_entity(direction, row) if row is not None else None

    def find_letter_by_number(self, direction: Direction, letter_number: str) -> LetterEntity | None:
        model = LETTER_MODELS[direction]
        row = self._session.scalars(select(model).where(model.letter_number == letter_number)).first()
        return _letter_entity(direction, row) if row is not None else None

    def find_letters(
        self, direction: Direction, filters: LetterFilters, pagination: Pagination
    ) -> list[LetterEntity]:
        model = LETTER_MODELS[direction]
        if pagination.sort_by == "primary_date":
            sort_column = getattr(model, direction.date_field)
        else:
            sort_column = getattr(model, pagination.sort_by)
        order = sort_column.asc() if pagination.sort_order == "asc" else sort_column.desc()

        stmt = (
            select(model)
            .where(*self._letter_conditions(model, direction, filters))
            .order_by(order, model.id)
            .offset(pagination.offset)
            .limit(pagination.limit)
        )
        return [_letter_entity(direction, row) for row in self._session.scalars(stmt)]

    def count_letters(self, direction: Direction, filters: LetterFilters) -> int:
        model = LETTER_MODELS[direction]
        stmt = select(func.count()).select_from(model).where(
            *self._letter_conditions(model, direction, filters)
        )
        return int(self._session.scalar(stmt) or 0)

    @staticmethod
    def _letter_conditions(model: Any, direction: Direction, filters: LetterFilters) -> list[Any]:
        date_column = getattr(model, direction.date_field)
        columns = {
            "search": [
                model.letter_number,
                model.subject,
                getattr(model, direction.counterpart_field),
                model.note,
            ],
            "category": [model.category],
            "date_from": [date_column],
            "date_to": [date_column],
            "user_id": [model.user_id],
            "is_invitation": [model.is_invitation],
        }
        return [filter_condition(op, columns[name], value) for name, op, value in filters.terms()]

    def create_letter(
        self,
        direction: Direction,
        draft: LetterDraft,
        user_id: str,
        attachment: Attachment | None,
    ) -> LetterEntity:
        model = LETTER_MODELS[direction]
        row = model(
            user_id=user_id,
            file_name=attachment.file_name if attachment else None,
            file_path=attachment.file_path if attachment else None,
            **draft.to_columns(direction),
        )
        self._session.add(row)
        self._session.flush()
        return _letter_entity(direction, row)

    def update_letter(
        self,
        direction: Direction,
        letter_id: str,
        draft: LetterDraft,
        attachment: Attachment | None,
    ) -> LetterEntity:
        row = self._session.get(LETTER_MODELS[direction], letter_id)
        if row is None:
            raise ArchiveError.not_found(f"{direction.label} letter", id=letter_id)
        for column, value in draft.to_columns(direction).items():
            setattr(row, column, value)
        row.file_name = attachment.file_name if attachment else None
        row.file_path = attachment.file_path if attachment else None
        row.updated_at = utcnow()
        self._session.flush()
        return _letter_entity(direction, row)

    def set_attachment(
        self, direction: Direction, letter_id: str, attachment: Attachment | None
    ) -> LetterEntity | None:
        row = self._session.get(LETTER_MODELS[direction], letter_id)
        if row is None:
            return None
        row.file_name = attachment.file_name if attachment else None
        row.file_path = attachment.file_path if attachment else None
        row.updated_at = utcnow()
        self._session.flush()
        return _letter_entity(direction, row)

    def delete_letter(self, direction: Direction, letter_id: str) -> bool:
        row = self._session.get(LETTER_MODELS[direction], letter_id)
        if row is None:
            return False
        self._session.delete(row)
        self._session.flush()
        return True

    def find_invitations_between(
        self,
        direction: Direction,
        start: datetime,
        end: datetime | None = None,
        limit: int | None = None,
    ) -> list[LetterEntity]:
        model = LETTER_MODELS[direction]
        stmt = (
            select(model)
            .where(model.is_invitation.is_(True), model.event_date >= start)
            .order_by(model.event_date, model.id)
        )
        if end is not None:
            stmt = stmt.where(model.event_date < end)
        if limit is not None:
            stmt = stmt.limit(limit)
        return [_letter_entity(direction, row) for row in self._session.scalars(stmt)]

    def referenced_file_paths(self) -> set[str]:
        stmt = union(
            *(
                select(model.file_path).where(model.file_path.is_not(None))
                for model in LETTER_MODELS.values()
            )
        )
        return {path for path in self._session.scalars(stmt) if path}

    # Notifications

    def create_notification(self, draft: NotificationDraft) -> NotificationEntity:
        row = NotificationRow(
            title=draft.title,
            message=draft.message,
            type=draft.type.value,
            user_id=draft.user_id,
        )
        self._session.add(row)
        self._session.flush()
        return _notification_entity(row)

    def find_notification(self, notification_id: str) -> NotificationEntity | None:
        row = self._session.get(NotificationRow, notification_id)
        return _notification_entity(row) if row is not None else None

    def find_notifications(
        self, filters: NotificationFilters, pagination: Pagination
    ) -> list[NotificationEntity]:
        sort_column = getattr(NotificationRow, pagination.sort_by)
        order = sort_column.asc() if pagination.sort_order == "asc" else sort_column.desc()
        stmt = (
            select(NotificationRow)
            .where(*self._notification_conditions(filters))
            .order_by(order, NotificationRow.id)
            .offset(pagination.offset)
            .limit(pagination.limit)
        )
        return [_notification_entity(row) for row in self._session.scalars(stmt)]

    def count_notifications(self, filters: NotificationFilters) -> int:
        stmt = select(func.count()).select_from(NotificationRow).where(
            *self._notification_conditions(filters)
        )
        return int(self._session.scalar(stmt) or 0)

    @staticmethod
    def _notification_conditions(filters: NotificationFilters) -> list[Any]:
        columns = {"user_id": [NotificationRow.user_id], "is_read": [NotificationRow.is_read]}
        return [filter_condition(op, columns[name], value) for name, op, value in filters.terms()]

    def mark_notification_read(self, notification_id: str) -> NotificationEntity | None:
        row = self._session.get(NotificationRow, notification_id)
        if row is None:
            return None
        row.is_read = True
        self._session.flush()
        return _notification_entity(row)

    def mark_all_notifications_read(self, user_id: str) -> int:
        stmt = (
            update(NotificationRow)
            .where(
                or_(NotificationRow.user_id == user_id, NotificationRow.user_id.is_(None)),
                NotificationRow.is_read.is_(False),
            )
            .values(is_read=True, updated_at=utcnow())
        )
        return int(self._session.execute(stmt).rowcount or 0)

    def delete_notification(self, notification_id: str) -> bool:
        row = self._session.get(NotificationRow, notification_id)
        if row is None:
            return False
        self._session.delete(row)
        self._session.flush()
        return True

    def delete_read_notifications_before(self, cutoff: datetime) -> int:
        stmt = sql_delete(NotificationRow).where(
            NotificationRow.is_read.is_(True), NotificationRow.created_at < cutoff
        )
        return int(self._session.execute(stmt).rowcount or 0)


class SqlDataStore:
    """SQLAlchemy-backed data store.

    This class satisfies the DataStore protocol through structural
    typing - no explicit inheritance needed.

    Example:
        ```python
        store = SqlDataStore.create("sqlite:///./archive.db")
        count = store.run_in_transaction(
            lambda tx: tx.count_letters(Direction.INCOMING, LetterFilters())
        )
        ```
    """

    def __init__(
        self,
        engine: Engine,
        timeout: float | None = None,
        isolation_level: str | None = None,
    ) -> None:
        """Initialize the data store.

        Args:
            engine: SQLAlchemy engine
            timeout: Default transaction timeout in seconds
            isolation_level: Default isolation level (None = driver default)
        """
        self._engine = engine
        self._timeout = timeout
        self._isolation_level = isolation_level

    @classmethod
    def create(
        cls,
        database_url: str | None = None,
        timeout: float | None = None,
        isolation_level: str | None = None,
    ) -> "SqlDataStore":
        """Factory method to create SqlDataStore and its schema.

        Args:
            database_url: SQLAlchemy URL. If None, uses settings.
            timeout: Transaction timeout in seconds. If None, uses settings.
            isolation_level: Isolation level. If None, uses settings.

        Returns:
            Configured SqlDataStore with tables created
        """
        url = database_url or settings.database_url
        timeout = timeout if timeout is not None else settings.db_transaction_timeout

        if url.startswith("sqlite"):
            options: dict[str, Any] = {
                "connect_args": {"check_same_thread": False, "timeout": timeout},
            }
            if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
                options["poolclass"] = StaticPool
            engine = create_engine(url, **options)
        else:
            engine = create_engine(url, pool_pre_ping=True)

        store = cls(
            engine=engine,
            timeout=timeout,
            isolation_level=isolation_level or settings.db_isolation_level,
        )
        store.create_schema()
        logger.info(f"Data store ready: {engine.url.render_as_string(hide_password=True)}")
        return store

    def create_schema(self) -> None:
        Base.metadata.create_all(bind=self._engine)

    def run_in_transaction(
        self,
        fn: Callable[[SqlTransaction], T],
        timeout: float | None = None,
        isolation_level: str | None = None,
    ) -> T:
        """Run ``fn`` inside one transaction.

        Returns:
            Whatever ``fn`` returned, after a successful commit

        Raises:
            ArchiveError: CONFLICT on constraint violations, TRANSIENT_STORE
                on deadlocks and timeouts, INTERNAL on other database
                failures; errors raised by ``fn`` pass through unchanged
        """
        timeout = self._timeout if timeout is None else timeout
        isolation_level = isolation_level or self._isolation_level
        bind = (
            self._engine.execution_options(isolation_level=isolation_level)
            if isolation_level
            else self._engine
        )

        try:
            with Session(bind=bind, autoflush=False, expire_on_commit=False) as session:
                with session.begin():
                    self._apply_timeout(session, timeout)
                    return fn(SqlTransaction(session))
        except IntegrityError as e:
            raise ArchiveError.conflict(
                "Resource already exists",
                constraint=str(e.orig),
            ) from e
        except SQLAlchemyError as e:
            if is_transient_db_error(e):
                raise ArchiveError.transient(f"Transient data store failure: {e}") from e
            logger.error(f"Data store operation failed: {e}")
            raise ArchiveError(ErrorKind.INTERNAL, "Data store operation failed") from e

    def _apply_timeout(self, session: Session, timeout: float | None) -> None:
        if not timeout:
            return
        millis = int(timeout * 1000)
        dialect = self._engine.dialect.name
        if dialect == "postgresql":
            session.execute(text(f"SET LOCAL statement_timeout = {millis}"))
        elif dialect == "sqlite":
            session.execute(text(f"PRAGMA busy_timeout = {millis}"))

    def health_check(self) -> bool:
        """Check if the database is reachable.

        Returns:
            True if healthy, False otherwise
        """
        try:
            with self._engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    def close(self) -> None:
        self._engine.dispose()
        logger.info("Data store connections closed")

    @property
    def engine(self) -> Engine:
        """Get the SQLAlchemy engine (for testing)."""
        return self._engine
