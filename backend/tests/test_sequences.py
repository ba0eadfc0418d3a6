from sqlalchemy.dialects import postgresql

from cleverbudget.backup.sequences import SEQUENCE_COLUMNS, repair_sequences, supports_sequence_repair


class RecordingConnection:
    dialect = postgresql.dialect()

    def __init__(self) -> None:
        self.statements = []

    def execute(self, statement):
        self.statements.append(statement)


def test_sqlite_store_skips_sequence_repair(engine) -> None:
    assert not supports_sequence_repair(engine.dialect)
    with engine.begin() as conn:
        assert repair_sequences(conn) == []


def test_postgres_repair_binds_table_and_column_names() -> None:
    conn = RecordingConnection()

    repaired = repair_sequences(conn)

    assert len(repaired) == len(SEQUENCE_COLUMNS)
    assert "transactions.id" in repaired
    assert "role_claims.id" in repaired
    compiled = conn.statements[0].compile(dialect=postgresql.dialect())
    sql = str(compiled)
    assert "setval(pg_get_serial_sequence(" in sql
    assert "coalesce(" in sql
    assert "categories" in compiled.params.values()
    assert "id" in compiled.params.values()
    assert 1 in compiled.params.values()
