"""
auth/store.py -- SQLAlchemy Core schema, engine factory, and user repository.

Pattern: Repository + Data Mapper.
UserStore is the repository for User rows; _row_to_user is the mapper. The
session repository lives in auth/sessions.py and shares this module's schema
and engine. Route and service code never touches SQL directly.

Datastore selection:
  create_auth_engine(url) accepts any SQLAlchemy URL. A local SQLite file is
  the default (Settings.database_url); a managed database is selected purely
  by configuring a different URL at startup. Nothing above this module
  branches on which backend is in use.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Email uniqueness is enforced by the UNIQUE constraint; emails are
  normalised (strip + lower) before every insert and lookup.

Timestamps:
  Stored as UTC ISO-8601 strings with fixed microsecond precision. Fixed
  precision makes lexical comparison in SQL identical to chronological
  comparison, which the session expiry filters rely on.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.pool import Pool

from auth.models import User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

users_table = Table(
    "users",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("full_name", String(255), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Column("last_login_at", String(32)),
    Index("idx_users_active", "is_active"),
)

sessions_table = Table(
    "sessions",
    metadata,
    Column("id", String(32), primary_key=True),
    Column("user_id", String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),  # SHA-256 hex of the login nonce
    Column("ip_address", String(64)),
    Column("user_agent", Text),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("last_active_at", String(32), nullable=False),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Index("idx_sessions_expires", "expires_at"),
    Index("idx_sessions_user", "user_id"),
    Index("idx_sessions_active", "user_id", "is_active"),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign-key enforcement on each new SQLite connection.

    SQLite ships with foreign keys OFF; without this pragma deleting a user
    would leave its sessions behind instead of cascading. PRAGMAs are
    per-connection, so this runs from the pool's connect event.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_auth_engine(db_url: str, poolclass: type[Pool] | None = None) -> Engine:
    """Create the engine for db_url and make sure the auth schema exists.

    poolclass overrides SQLAlchemy's choice of pool. In-memory SQLite
    databases (tests) pass one explicitly; file and server URLs leave it None.
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine_kwargs: dict = {"connect_args": connect_args}
    if poolclass is not None:
        engine_kwargs["poolclass"] = poolclass
    engine = create_engine(db_url, **engine_kwargs)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _sqlite_pragmas)
    metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def now_iso() -> str:
    return to_iso(datetime.now(timezone.utc))


def new_id() -> str:
    """128 bits from the OS CSPRNG, hex encoded (32 chars)."""
    return secrets.token_hex(16)


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User rows.

    Usage:
        engine = create_auth_engine("sqlite:///quizmaker.db")
        store = UserStore(engine)
        user_id = store.create_user(User(email="t@example.com", full_name="T", password_hash=h))
        user = store.get_by_email("T@Example.com")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_user(self, user: User) -> str:
        """Insert a new user and return its generated id.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        AuthService turns that into DuplicateEmail, which also covers two
        concurrent signups racing past the pre-insert existence check.
        """
        user_id = new_id()
        stamp = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                users_table.insert().values(
                    id=user_id,
                    email=normalize_email(user.email),
                    password_hash=user.password_hash,
                    full_name=user.full_name,
                    is_active=1 if user.is_active else 0,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
            conn.commit()
        return user_id

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by normalised email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(
                users_table.select().where(users_table.c.email == normalize_email(email))
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(users_table.select().where(users_table.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def email_exists(self, email: str) -> bool:
        with self.engine.connect() as conn:
            row = conn.execute(
                users_table.select()
                .with_only_columns(users_table.c.id)
                .where(users_table.c.email == normalize_email(email))
            ).fetchone()
        return row is not None

    def update_last_login(self, user_id: str) -> None:
        """Stamp the current UTC time as last_login_at for the given user."""
        stamp = now_iso()
        with self.engine.connect() as conn:
            conn.execute(
                users_table.update()
                .where(users_table.c.id == user_id)
                .values(last_login_at=stamp, updated_at=stamp)
            )
            conn.commit()

    def set_active(self, user_id: str, is_active: bool) -> bool:
        """Activate or deactivate an account. Returns False if user_id is unknown."""
        with self.engine.connect() as conn:
            result = conn.execute(
                users_table.update()
                .where(users_table.c.id == user_id)
                .values(is_active=1 if is_active else 0, updated_at=now_iso())
            )
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: str) -> bool:
        """Permanently delete a user. Its sessions go with it (ON DELETE CASCADE)."""
        with self.engine.connect() as conn:
            result = conn.execute(users_table.delete().where(users_table.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def ping(self) -> bool:
        """Cheap connectivity probe for the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(users_table.select().with_only_columns(users_table.c.id).limit(1))
        return True


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        full_name=row.full_name,
        password_hash=row.password_hash,
        is_active=bool(row.is_active),
        created_at=row.created_at,
        updated_at=row.updated_at,
        last_login_at=row.last_login_at,
    )
