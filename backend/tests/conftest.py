from datetime import datetime
from decimal import Decimal
from typing import Callable

import pytest
from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from cleverbudget import db
from cleverbudget.backup.producer import BackupProducer
from cleverbudget.backup.restore import RestoreEngine
from cleverbudget.backup.storage import BackupStorage
from cleverbudget.config import BackupOptions

USER_ID = "8d0f2a6e-3c51-4b7e-9a15-2f3c7e1d9b40"
ROLE_ID = "b3a1c7d2-0e44-4f6a-8c9d-6a5e4f3b2c10"


def seed_scenario(engine: Engine) -> None:
    created = datetime(2024, 6, 1, 8, 30)
    with engine.begin() as conn:
        conn.execute(db.roles.insert(), [{"id": ROLE_ID, "name": "Admin", "normalized_name": "ADMIN"}])
        conn.execute(
            db.users.insert(),
            [
                {
                    "id": USER_ID,
                    "user_name": "alice@example.com",
                    "normalized_user_name": "ALICE@EXAMPLE.COM",
                    "email": "alice@example.com",
                    "normalized_email": "ALICE@EXAMPLE.COM",
                    "email_confirmed": True,
                    "password_hash": "AQAAAAIAAYagAAAAE",
                    "security_stamp": "stamp-1",
                    "first_name": "Alice",
                    "last_name": "Novak",
                    "created_at": created,
                }
            ],
        )
        conn.execute(db.role_claims.insert(), [{"id": 1, "role_id": ROLE_ID, "claim_type": "permission", "claim_value": "backups"}])
        conn.execute(db.user_claims.insert(), [{"id": 1, "user_id": USER_ID, "claim_type": "plan", "claim_value": "pro"}])
        conn.execute(
            db.user_logins.insert(),
            [{"login_provider": "Google", "provider_key": "g-123", "provider_display_name": "Google", "user_id": USER_ID}],
        )
        conn.execute(db.user_tokens.insert(), [{"user_id": USER_ID, "login_provider": "Google", "name": "refresh", "value": "tok"}])
        conn.execute(db.user_roles.insert(), [{"user_id": USER_ID, "role_id": ROLE_ID}])
        conn.execute(
            db.categories.insert(),
            [{"id": 1, "user_id": USER_ID, "name": "Groceries", "icon": "cart", "color": "#22aa55", "kind": "Essential", "tags": '["food"]', "created_at": created}],
        )
        conn.execute(
            db.transactions.insert(),
            [
                {
                    "id": 1,
                    "user_id": USER_ID,
                    "amount": Decimal("100.00"),
                    "type": "Expense",
                    "description": "Weekly shopping",
                    "category_id": 1,
                    "date": datetime(2024, 6, 3),
                    "created_at": created,
                }
            ],
        )
        conn.execute(
            db.budgets.insert(),
            [{"id": 1, "user_id": USER_ID, "category_id": 1, "amount": Decimal("500.00"), "month": 6, "year": 2024, "created_at": created}],
        )
        conn.execute(
            db.goals.insert(),
            [{"id": 1, "user_id": USER_ID, "category_id": 1, "target_amount": Decimal("1000.00"), "month": 12, "year": 2024, "created_at": created}],
        )
        conn.execute(
            db.recurring_transactions.insert(),
            [
                {
                    "id": 1,
                    "user_id": USER_ID,
                    "amount": Decimal("25.50"),
                    "type": "Expense",
                    "description": "Streaming",
                    "category_id": 1,
                    "frequency": "Monthly",
                    "start_date": datetime(2024, 1, 1),
                    "day_of_month": 1,
                    "created_at": created,
                }
            ],
        )


def _new_engine() -> Engine:
    engine = db.create_db_engine("sqlite+pysqlite:///:memory:")
    db.metadata.create_all(engine)
    return engine


@pytest.fixture
def engine():
    engine = _new_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def seeded_engine(engine: Engine) -> Engine:
    seed_scenario(engine)
    return engine


@pytest.fixture
def empty_engine():
    engine = _new_engine()
    yield engine
    engine.dispose()


@pytest.fixture
def options(tmp_path) -> BackupOptions:
    return BackupOptions(root_path=str(tmp_path / "backups"), retention_days=7)


@pytest.fixture
def storage(options: BackupOptions, tmp_path) -> BackupStorage:
    return BackupStorage(options.root_path, tmp_path)


@pytest.fixture
def producer(seeded_engine: Engine, storage: BackupStorage, options: BackupOptions) -> BackupProducer:
    return BackupProducer(seeded_engine, storage, options)


@pytest.fixture
def restore_engine(seeded_engine: Engine) -> RestoreEngine:
    return RestoreEngine(seeded_engine)


@pytest.fixture
def count_rows() -> Callable[[Engine, str], int]:
    def _count(engine: Engine, table_name: str) -> int:
        table = db.metadata.tables[table_name]
        with engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(table)).scalar_one()

    return _count
