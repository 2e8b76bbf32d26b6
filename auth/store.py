"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper + Unit of Work.
UserDirectory, SessionStore and OneTimeCodeStore are the repositories;
_row_to_user / _row_to_session / _row_to_code are the mappers. AuthStore owns
the engine and hands out UnitOfWork objects whose repositories all share one
connection and one transaction. Service code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Single-writer transactions. On SQLite every transaction opens with
  BEGIN IMMEDIATE (the pysqlite driver's own implicit BEGIN is disabled in
  _on_connect), so count-then-insert in the reset rate limit and
  revoke-then-create in refresh rotation cannot interleave. Other dialects
  run at SERIALIZABLE isolation.
  ping() opens a plain deferred BEGIN and never takes the write lock.

  Conditional updates. revoke_if_active() and mark_consumed() only touch rows
  still in their pre-state and report whether they did, so a concurrent loser
  observes rowcount 0 instead of double-spending a token or a code.

Failure model:
  Lock waits are bounded by the driver timeout (Settings.store_timeout_seconds).
  Timeouts and connection failures become Unavailable; the transaction is
  rolled back first, so the data is left in its pre-state.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Connection, Engine

from auth.errors import ConflictError, Unavailable
from auth.models import OneTimeCode, RefreshSession, User
from core.clock import as_utc

logger = logging.getLogger("folioauth.store")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).parent / 'folioauth.db'}"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100)),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", String(255), nullable=False),
    Column("risk_profile", String(16), nullable=False, server_default="moderate"),
    Column("role", String(16), nullable=False, server_default="user"),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

_refresh_sessions = Table(
    "refresh_sessions",
    _metadata,
    Column("id", String(36), primary_key=True),  # embedded in the refresh token as "sid"
    Column("user_id", String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("token_hash", String(255), nullable=False),  # bcrypt, never the raw token
    Column("revoked", Boolean, nullable=False, server_default="0"),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Index("ix_refresh_sessions_user_revoked", "user_id", "revoked"),
    Index("ix_refresh_sessions_expires_at", "expires_at"),
)

_one_time_codes = Table(
    "one_time_codes",
    _metadata,
    # Integer id breaks created_at ties when picking the newest code.
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False),
    Column("code_hash", String(255), nullable=False),
    Column("expires_at", DateTime(timezone=True), nullable=False),
    Column("consumed_at", DateTime(timezone=True)),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("ix_one_time_codes_email_created", "email", "created_at"),
    Index("ix_one_time_codes_expires_at", "expires_at"),
)


# ---------------------------------------------------------------------------
# SQLite connection hooks
# ---------------------------------------------------------------------------


def _on_connect(dbapi_conn, connection_record) -> None:
    """Configure each new SQLite connection.

    isolation_level=None stops pysqlite from issuing its own deferred BEGIN
    so _on_begin controls the transaction mode. WAL lets readers proceed
    during writes; foreign_keys must be enabled per connection.
    """
    dbapi_conn.isolation_level = None
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


def _on_begin(conn: Connection) -> None:
    # Read-only callers (ping) opt out of the write lock.
    if conn.get_execution_options().get("deferred_begin"):
        conn.exec_driver_sql("BEGIN")
    else:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _utc(value: datetime) -> datetime:
    """Normalize to aware UTC before binding. SQLite stores the wall-clock text only."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _new_id() -> str:
    return str(uuid4())


# ---------------------------------------------------------------------------
# Repositories -- bound to one connection inside a UnitOfWork
# ---------------------------------------------------------------------------


class UserDirectory:
    """Lookup, create, and password update for User records."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email. Emails are stored lowercased, so pass a normalized value."""
        row = self._conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        row = self._conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def create(self, user: User) -> User:
        """Insert a new user and return it with id and timestamps filled in.

        Raises ConflictError if the email already exists. The UNIQUE index is
        the final arbiter when two signups race past the service's pre-check.
        """
        user_id = user.id or _new_id()
        created_at = _utc(user.created_at) if user.created_at else datetime.now(timezone.utc)
        updated_at = _utc(user.updated_at) if user.updated_at else created_at
        try:
            self._conn.execute(
                _users.insert().values(
                    id=user_id,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    email=user.email,
                    password_hash=user.password_hash,
                    risk_profile=user.risk_profile,
                    role=user.role,
                    created_at=created_at,
                    updated_at=updated_at,
                )
            )
        except sa_exc.IntegrityError as exc:
            raise ConflictError() from exc
        user.id = user_id
        user.created_at = created_at
        user.updated_at = updated_at
        return user

    def update_password(self, user_id: str, password_hash: str, now: datetime) -> bool:
        """Replace the stored password hash. Returns False if user_id was not found."""
        result = self._conn.execute(
            _users.update().where(_users.c.id == user_id).values(password_hash=password_hash, updated_at=_utc(now))
        )
        return result.rowcount > 0


class SessionStore:
    """Durable record of issued refresh tokens."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def create(self, session: RefreshSession) -> RefreshSession:
        session_id = session.id or _new_id()
        created_at = _utc(session.created_at) if session.created_at else datetime.now(timezone.utc)
        self._conn.execute(
            _refresh_sessions.insert().values(
                id=session_id,
                user_id=session.user_id,
                token_hash=session.token_hash,
                revoked=False,
                created_at=created_at,
                expires_at=_utc(session.expires_at),
            )
        )
        session.id = session_id
        session.created_at = created_at
        session.revoked = False
        return session

    def get_active(self, session_id: str, user_id: str, now: datetime) -> RefreshSession | None:
        """Return the session only if it belongs to user_id, is not revoked, and has not expired."""
        row = self._conn.execute(
            _refresh_sessions.select().where(
                (_refresh_sessions.c.id == session_id)
                & (_refresh_sessions.c.user_id == user_id)
                & (_refresh_sessions.c.revoked.is_(False))
                & (_refresh_sessions.c.expires_at > _utc(now))
            )
        ).fetchone()
        return _row_to_session(row) if row is not None else None

    def revoke_if_active(self, session_id: str) -> bool:
        """Revoke one session. Returns False if it was already revoked (a concurrent rotation won)."""
        result = self._conn.execute(
            _refresh_sessions.update()
            .where((_refresh_sessions.c.id == session_id) & (_refresh_sessions.c.revoked.is_(False)))
            .values(revoked=True)
        )
        return result.rowcount == 1

    def revoke_all_for_user(self, user_id: str) -> int:
        """Revoke every non-revoked session for user_id. Returns the number revoked."""
        result = self._conn.execute(
            _refresh_sessions.update()
            .where((_refresh_sessions.c.user_id == user_id) & (_refresh_sessions.c.revoked.is_(False)))
            .values(revoked=True)
        )
        return result.rowcount

    def list_for_user(self, user_id: str) -> list[RefreshSession]:
        """Return all sessions for user_id, newest first."""
        rows = self._conn.execute(
            _refresh_sessions.select()
            .where(_refresh_sessions.c.user_id == user_id)
            .order_by(_refresh_sessions.c.created_at.desc())
        ).fetchall()
        return [_row_to_session(r) for r in rows]


class OneTimeCodeStore:
    """Durable record of issued password-reset codes."""

    def __init__(self, conn: Connection) -> None:
        self._conn = conn

    def create(self, code: OneTimeCode) -> OneTimeCode:
        created_at = _utc(code.created_at) if code.created_at else datetime.now(timezone.utc)
        result = self._conn.execute(
            _one_time_codes.insert().values(
                email=code.email,
                code_hash=code.code_hash,
                expires_at=_utc(code.expires_at),
                consumed_at=None,
                created_at=created_at,
            )
        )
        code.id = result.inserted_primary_key[0]
        code.created_at = created_at
        return code

    def latest_usable(self, email: str, now: datetime) -> OneTimeCode | None:
        """Newest unconsumed, unexpired code for email, or None."""
        row = self._conn.execute(
            _one_time_codes.select()
            .where(
                (_one_time_codes.c.email == email)
                & (_one_time_codes.c.consumed_at.is_(None))
                & (_one_time_codes.c.expires_at > _utc(now))
            )
            .order_by(_one_time_codes.c.created_at.desc(), _one_time_codes.c.id.desc())
            .limit(1)
        ).fetchone()
        return _row_to_code(row) if row is not None else None

    def count_since(self, email: str, since: datetime) -> int:
        """Number of codes issued for email at or after since (the rate-limit window)."""
        result = self._conn.execute(
            select(func.count())
            .select_from(_one_time_codes)
            .where((_one_time_codes.c.email == email) & (_one_time_codes.c.created_at >= _utc(since)))
        ).scalar()
        return result or 0

    def mark_consumed(self, code_id: int, now: datetime) -> bool:
        """Stamp a code as consumed. Returns False if it was already consumed."""
        result = self._conn.execute(
            _one_time_codes.update()
            .where((_one_time_codes.c.id == code_id) & (_one_time_codes.c.consumed_at.is_(None)))
            .values(consumed_at=_utc(now))
        )
        return result.rowcount == 1

    def purge_expired(self, now: datetime, keep_since: datetime) -> int:
        """Delete expired codes created before keep_since. Returns number of rows removed.

        Codes inside the rate-limit window are kept even when expired so that
        purging never lowers a live request count.
        """
        result = self._conn.execute(
            _one_time_codes.delete().where(
                (_one_time_codes.c.expires_at < _utc(now)) & (_one_time_codes.c.created_at < _utc(keep_since))
            )
        )
        return result.rowcount

    def stats(self, now: datetime) -> dict[str, int]:
        """Counts of total, active (usable), expired, and consumed codes."""
        now = _utc(now)
        c = _one_time_codes.c
        row = self._conn.execute(
            select(
                func.count(),
                func.count().filter(c.consumed_at.is_(None) & (c.expires_at > now)),
                func.count().filter(c.expires_at <= now),
                func.count().filter(c.consumed_at.is_not(None)),
            ).select_from(_one_time_codes)
        ).one()
        return {"total": row[0], "active": row[1], "expired": row[2], "consumed": row[3]}


class UnitOfWork:
    """The three repositories bound to one connection and one transaction."""

    def __init__(self, conn: Connection) -> None:
        self.users = UserDirectory(conn)
        self.sessions = SessionStore(conn)
        self.codes = OneTimeCodeStore(conn)


# ---------------------------------------------------------------------------
# Engine owner
# ---------------------------------------------------------------------------


class AuthStore:
    """Owns the engine and the schema; opens UnitOfWork transactions.

    Usage:
        store = AuthStore("sqlite:///:memory:")
        with store.transaction() as uow:
            user = uow.users.get_by_email("jane@x.com")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL, timeout: float = 5.0) -> None:
        self.is_sqlite = db_url.startswith("sqlite")
        if self.is_sqlite:
            self.engine: Engine = create_engine(
                db_url, connect_args={"check_same_thread": False, "timeout": timeout}
            )
            event.listen(self.engine, "connect", _on_connect)
            event.listen(self.engine, "begin", _on_begin)
        else:
            self.engine = create_engine(db_url, isolation_level="SERIALIZABLE", pool_timeout=timeout)
        _metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[UnitOfWork]:
        """All-or-nothing unit of work.

        Commits when the block exits cleanly; rolls back on any exception,
        including domain errors raised mid-block. Store-level timeouts and
        connection failures surface as Unavailable after the rollback.
        """
        try:
            with self.engine.begin() as conn:
                yield UnitOfWork(conn)
        except (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError) as exc:
            logger.warning("Store unavailable: %s", exc.__class__.__name__)
            raise Unavailable() from exc

    def ping(self) -> bool:
        """Return True if the database answers a trivial query.

        Runs as a deferred read, so a held write lock does not stall it.
        """
        try:
            with self.engine.connect().execution_options(deferred_begin=True) as conn:
                conn.execute(select(1))
            return True
        except sa_exc.SQLAlchemyError:
            logger.exception("Store health check failed")
            return False

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        first_name=row.first_name,
        last_name=row.last_name,
        email=row.email,
        password_hash=row.password_hash,
        risk_profile=row.risk_profile,
        role=row.role,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _row_to_session(row) -> RefreshSession:
    return RefreshSession(
        id=row.id,
        user_id=row.user_id,
        token_hash=row.token_hash,
        revoked=bool(row.revoked),
        created_at=as_utc(row.created_at),
        expires_at=as_utc(row.expires_at),
    )


def _row_to_code(row) -> OneTimeCode:
    return OneTimeCode(
        id=row.id,
        email=row.email,
        code_hash=row.code_hash,
        expires_at=as_utc(row.expires_at),
        consumed_at=as_utc(row.consumed_at) if row.consumed_at is not None else None,
        created_at=as_utc(row.created_at),
    )
