"""Tests for ``strata.core.dialect``."""

from __future__ import annotations

import pytest

from strata.core.dialect import (
    Dialect,
    PostgreSQLDialect,
    SQLiteDialect,
    get_dialect,
    is_boolean_type,
    is_integer_type,
    register_dialect,
)


class TestGetDialect:
    def test_known_names(self):
        assert isinstance(get_dialect("sqlite"), SQLiteDialect)
        assert isinstance(get_dialect("postgresql"), PostgreSQLDialect)
        assert isinstance(get_dialect("POSTGRES"), PostgreSQLDialect)

    def test_unknown_name(self):
        with pytest.raises(ValueError, match="Unknown dialect"):
            get_dialect("oracle")

    def test_register_custom(self):
        class EchoDialect(SQLiteDialect):
            @property
            def name(self) -> str:
                return "echo"

        register_dialect("echo", EchoDialect())
        assert get_dialect("echo").name == "echo"

    def test_protocol(self):
        assert isinstance(SQLiteDialect(), Dialect)
        assert isinstance(PostgreSQLDialect(), Dialect)


class TestSQLiteDialect:
    dialect = SQLiteDialect()

    def test_bind_numbers_placeholders(self):
        assert self.dialect.bind("SELECT * FROM t WHERE a = $1 AND b = $2 OR c = $1") == (
            "SELECT * FROM t WHERE a = ?1 AND b = ?2 OR c = ?1"
        )

    def test_bind_skips_literals(self):
        assert self.dialect.bind("SELECT '$1' AS price WHERE a = $1") == "SELECT '$1' AS price WHERE a = ?1"

    def test_catalog_and_order(self):
        assert "pragma_table_info" in self.dialect.columns_query()
        assert self.dialect.natural_order() == "rowid"
        assert "WITHOUT ROWID" in self.dialect.key_order_query()
        assert self.dialect.vacuum_statements(["team", "version"]) == ["VACUUM"]
        assert self.dialect.value_placeholder(3, "TEXT") == "$3"
        assert self.dialect.parallel_writes is False


class TestPostgreSQLDialect:
    dialect = PostgreSQLDialect()

    def test_bind_is_identity(self):
        sql = "SELECT * FROM t WHERE a = $1"
        assert self.dialect.bind(sql) == sql

    def test_value_placeholder_casts_text(self):
        assert self.dialect.value_placeholder(1, "integer") == "$1"
        assert self.dialect.value_placeholder(2, "boolean") == "$2"
        assert self.dialect.value_placeholder(3, "ARRAY") == "$3"
        assert self.dialect.value_placeholder(4, "timestamp with time zone") == (
            "CAST($4::text AS timestamp with time zone)"
        )

    def test_catalog_and_order(self):
        assert "information_schema.columns" in self.dialect.columns_query()
        assert self.dialect.natural_order() == "ctid"
        assert self.dialect.key_order_query() is None
        assert self.dialect.vacuum_statements(["team", "version"]) == ["VACUUM team", "VACUUM version"]
        assert self.dialect.parallel_writes is True


class TestTypeFamilies:
    @pytest.mark.parametrize("data_type", ["INTEGER", "int", "bigint", "smallint", "INT4", "serial", "bigserial"])
    def test_integer_types(self, data_type):
        assert is_integer_type(data_type)

    @pytest.mark.parametrize("data_type", ["interval", "point", "TEXT", "REAL", "", "character varying"])
    def test_non_integer_types(self, data_type):
        assert not is_integer_type(data_type)

    def test_boolean_types(self):
        assert is_boolean_type("BOOLEAN")
        assert is_boolean_type("bool")
        assert not is_boolean_type("TEXT")
