from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from .config import settings

metadata = MetaData()

users = Table(
    "users",
    metadata,
    Column("id", String(450), primary_key=True),
    Column("user_name", String(256)),
    Column("normalized_user_name", String(256), unique=True),
    Column("email", String(256)),
    Column("normalized_email", String(256)),
    Column("email_confirmed", Boolean, nullable=False, default=False),
    Column("password_hash", Text),
    Column("security_stamp", Text),
    Column("concurrency_stamp", Text),
    Column("phone_number", Text),
    Column("phone_number_confirmed", Boolean, nullable=False, default=False),
    Column("two_factor_enabled", Boolean, nullable=False, default=False),
    Column("lockout_end", DateTime(timezone=True)),
    Column("lockout_enabled", Boolean, nullable=False, default=False),
    Column("access_failed_count", Integer, nullable=False, default=0),
    Column("first_name", String(100), nullable=False, default=""),
    Column("last_name", String(100), nullable=False, default=""),
    Column("photo_url", Text),
    Column("created_at", DateTime, nullable=False),
)

roles = Table(
    "roles",
    metadata,
    Column("id", String(450), primary_key=True),
    Column("name", String(256)),
    Column("normalized_name", String(256), unique=True),
    Column("concurrency_stamp", Text),
)

role_claims = Table(
    "role_claims",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("role_id", String(450), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False),
    Column("claim_type", Text),
    Column("claim_value", Text),
)

user_claims = Table(
    "user_claims",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(450), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("claim_type", Text),
    Column("claim_value", Text),
)

user_logins = Table(
    "user_logins",
    metadata,
    Column("login_provider", String(128), primary_key=True),
    Column("provider_key", String(128), primary_key=True),
    Column("provider_display_name", Text),
    Column("user_id", String(450), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
)

user_tokens = Table(
    "user_tokens",
    metadata,
    Column("user_id", String(450), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("login_provider", String(128), primary_key=True),
    Column("name", String(128), primary_key=True),
    Column("value", Text),
)

user_roles = Table(
    "user_roles",
    metadata,
    Column("user_id", String(450), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", String(450), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)

categories = Table(
    "categories",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(450), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("name", String(100), nullable=False),
    Column("icon", String(50)),
    Column("color", String(20)),
    Column("is_default", Boolean, nullable=False, default=False),
    Column("kind", String(30), nullable=False, default="Essential"),
    Column("segment", String(120)),
    Column("tags", Text, nullable=False, default="[]"),
    Column("created_at", DateTime, nullable=False),
)

transactions = Table(
    "transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(450), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("amount", Numeric(18, 2), nullable=False),
    Column("type", String(20), nullable=False),
    Column("description", String(500), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False),
    Column("date", DateTime, nullable=False),
    Column("created_at", DateTime, nullable=False),
)

goals = Table(
    "goals",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(450), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False),
    Column("target_amount", Numeric(18, 2), nullable=False),
    Column("month", Integer, nullable=False),
    Column("year", Integer, nullable=False),
    Column("created_at", DateTime, nullable=False),
)

budgets = Table(
    "budgets",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(450), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False),
    Column("amount", Numeric(18, 2), nullable=False),
    Column("month", Integer, nullable=False),
    Column("year", Integer, nullable=False),
    Column("alert_at_50_percent", Boolean, nullable=False, default=True),
    Column("alert_at_80_percent", Boolean, nullable=False, default=True),
    Column("alert_at_100_percent", Boolean, nullable=False, default=True),
    Column("alert_50_sent", Boolean, nullable=False, default=False),
    Column("alert_80_sent", Boolean, nullable=False, default=False),
    Column("alert_100_sent", Boolean, nullable=False, default=False),
    Column("created_at", DateTime, nullable=False),
)

recurring_transactions = Table(
    "recurring_transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(450), ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    Column("amount", Numeric(18, 2), nullable=False),
    Column("type", String(20), nullable=False),
    Column("description", String(500), nullable=False),
    Column("category_id", Integer, ForeignKey("categories.id", ondelete="RESTRICT"), nullable=False),
    Column("frequency", String(20), nullable=False),
    Column("start_date", DateTime, nullable=False),
    Column("end_date", DateTime),
    Column("day_of_month", Integer),
    Column("day_of_week", String(20)),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("last_generated_date", DateTime),
    Column("created_at", DateTime, nullable=False),
)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine
    return create_engine(database_url, future=True, pool_pre_ping=True)


def get_engine() -> Engine:
    if settings.storage_backend == "postgres":
        return create_db_engine(settings.database_url)
    return create_db_engine("sqlite+pysqlite:///:memory:")
