"""Tests for the PostgreSQL adapter: URL handling, pooling, bind values.

The engine is replaced with a ``MagicMock`` so no server is needed; the
tests assert on the SQL the adapter issues.
"""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from db_backup.adapters import postgres
from db_backup.adapters.postgres import (
    PostgresAdapter,
    _cast_placeholder,
    bind_value,
    create_engine_pooled,
    normalize_driver_url,
)
from db_backup.backup.models import ColumnDef, DatabaseSnapshot, TableSnapshot, parse_storage_type
from db_backup.errors import QueryError


@pytest.fixture
def engine(monkeypatch):
    """Patch ``create_engine`` and return the mock engine it hands out."""
    mock_engine = MagicMock()
    factory = MagicMock(return_value=mock_engine)
    monkeypatch.setattr(postgres, "create_engine", factory)
    mock_engine.factory = factory
    return mock_engine


def _executed_sql(conn: MagicMock) -> list[str]:
    return [" ".join(str(c.args[0]).split()) for c in conn.execute.call_args_list]


class TestNormalizeDriverUrl:
    @pytest.mark.parametrize(
        "url, expected",
        [
            ("postgres://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
            ("postgresql://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
            ("postgresql+psycopg://u:p@h/db", "postgresql+psycopg://u:p@h/db"),
        ],
    )
    def test_schemes(self, url, expected):
        assert normalize_driver_url(url) == expected


class TestCreateEnginePooled:
    def test_pool_defaults_and_timeout(self, engine):
        create_engine_pooled("postgresql+psycopg://u:p@h/db")

        url, kwargs = engine.factory.call_args.args[0], engine.factory.call_args.kwargs
        assert url == "postgresql+psycopg://u:p@h/db?connect_timeout=5"
        assert kwargs["pool_size"] == 5
        assert kwargs["max_overflow"] == 10
        assert kwargs["pool_pre_ping"] is True
        assert kwargs["pool_recycle"] == 300
        assert "connect_args" not in kwargs

    def test_existing_query_string(self, engine):
        create_engine_pooled("postgresql+psycopg://u:p@h/db?application_name=x")
        assert engine.factory.call_args.args[0].endswith("?application_name=x&connect_timeout=5")

    def test_ssl_requires_tls(self, engine):
        create_engine_pooled("postgresql+psycopg://u:p@h/db", ssl=True)
        assert engine.factory.call_args.kwargs["connect_args"] == {"sslmode": "require"}

    def test_caller_kwargs_override(self, engine):
        create_engine_pooled("postgresql+psycopg://u:p@h/db", pool_size=1)
        assert engine.factory.call_args.kwargs["pool_size"] == 1


class TestBindValue:
    def test_json_column(self):
        assert bind_value({"x": 1}, parse_storage_type("jsonb")) == '{"x":1}'
        assert bind_value(3, parse_storage_type("json")) == "3"

    def test_array_column(self):
        assert bind_value(["a", "b"], parse_storage_type("_text")) == '{"a","b"}'
        assert bind_value("'{a,b}'", parse_storage_type("_text")) == "{a,b}"

    def test_structured_value_in_plain_column(self):
        assert bind_value({"a": 1}, parse_storage_type("text")) == '{"a":1}'

    def test_scalars_passed_through(self):
        assert bind_value(5, parse_storage_type("int4")) == 5
        assert bind_value("2024-01-01T00:00:00+00:00", parse_storage_type("timestamptz")) == (
            "2024-01-01T00:00:00+00:00"
        )

    def test_none(self):
        assert bind_value(None, parse_storage_type("jsonb")) is None


class TestCastPlaceholder:
    def test_simple_type(self):
        assert _cast_placeholder("p_0", parse_storage_type("int4")) == "CAST(:p_0 AS int4)"

    def test_array_type(self):
        assert _cast_placeholder("p_1", parse_storage_type("_text")) == "CAST(:p_1 AS _text)"

    def test_unknown_type_uncast(self):
        assert _cast_placeholder("p_2", parse_storage_type("")) == ":p_2"

    def test_unusual_type_name_quoted(self):
        assert _cast_placeholder("p_3", parse_storage_type("My Enum")) == 'CAST(:p_3 AS "My Enum")'

    def test_mixed_case_type_keeps_case(self):
        assert _cast_placeholder("p_4", parse_storage_type("MyEnum")) == 'CAST(:p_4 AS "MyEnum")'


class TestPostgresAdapter:
    def test_url_normalized(self, engine):
        PostgresAdapter("postgres://u:p@h/db")
        assert engine.factory.call_args.args[0].startswith("postgresql+psycopg://u:p@h/db")

    def test_restore_snapshot_statement_order(self, engine):
        conn = engine.begin.return_value.__enter__.return_value
        snapshot = DatabaseSnapshot(
            generated_at="2026-01-15T10:00:00+00:00",
            tables=[
                TableSnapshot(
                    name="appointments",
                    columns=[
                        ColumnDef(name="id", storage_type="int4", serial=True),
                        ColumnDef(name="tags", storage_type="_text"),
                    ],
                    rows=[{"id": 1, "tags": ["a"]}, {"id": 2, "tags": None}],
                ),
                TableSnapshot(name="empty", columns=[ColumnDef(name="id", storage_type="int4")]),
            ],
        )

        PostgresAdapter("postgresql://u:p@h/db").restore_snapshot(snapshot)

        statements = _executed_sql(conn)
        assert statements[0] == "SET session_replication_role = replica"
        assert statements[1] == (
            'TRUNCATE TABLE "public"."appointments", "public"."empty" RESTART IDENTITY CASCADE'
        )
        assert statements[2] == (
            'INSERT INTO "public"."appointments" ("id", "tags") '
            "VALUES (CAST(:p_0 AS int4), CAST(:p_1 AS _text))"
        )
        assert statements[3].startswith("SELECT setval(pg_get_serial_sequence(")
        assert statements[-1] == "SET session_replication_role = DEFAULT"
        assert len(statements) == 5

        params = conn.execute.call_args_list[2].args[1]
        assert params == [{"p_0": 1, "p_1": '{"a"}'}, {"p_0": 2, "p_1": None}]

    def test_restore_failure_wrapped(self, engine):
        conn = engine.begin.return_value.__enter__.return_value
        conn.execute.side_effect = SQLAlchemyError("boom")
        snapshot = DatabaseSnapshot(generated_at="x", tables=[])

        with pytest.raises(QueryError, match="Snapshot restore failed"):
            PostgresAdapter("postgresql://u:p@h/db").restore_snapshot(snapshot)

    def test_execute_script_single_call_autocommit(self, engine):
        conn = engine.connect.return_value.__enter__.return_value
        script = "BEGIN;\nSELECT 1;\nCOMMIT;\n"

        PostgresAdapter("postgresql://u:p@h/db").execute_script(script)

        conn.execution_options.assert_called_once_with(
            isolation_level="AUTOCOMMIT", no_parameters=True
        )
        conn.execution_options.return_value.exec_driver_sql.assert_called_once_with(script)

    def test_select_all_rows_as_dicts(self, engine):
        conn = engine.connect.return_value.__enter__.return_value
        result = conn.execute.return_value
        result.keys.return_value = ["id", "name"]
        result.fetchall.return_value = [(1, "Ada"), (2, "Grace")]

        rows = PostgresAdapter("postgresql://u:p@h/db").select_all("people")

        assert rows == [{"id": 1, "name": "Ada"}, {"id": 2, "name": "Grace"}]
        assert _executed_sql(conn) == ['SELECT * FROM "public"."people"']

    def test_get_columns_marks_serial(self, engine):
        conn = engine.connect.return_value.__enter__.return_value
        conn.execute.return_value.fetchall.return_value = [
            ("id", "int4", "nextval('t_id_seq'::regclass)", "NO"),
            ("uid", "int8", None, "YES"),
            ("tags", "_text", None, "NO"),
        ]

        columns = PostgresAdapter("postgresql://u:p@h/db").get_columns("t")

        assert [(c.name, c.storage_type, c.serial) for c in columns] == [
            ("id", "int4", True),
            ("uid", "int8", True),
            ("tags", "_text", False),
        ]

    def test_close_disposes_engine(self, engine):
        PostgresAdapter("postgresql://u:p@h/db").close()
        engine.dispose.assert_called_once()
