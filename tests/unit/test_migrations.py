"""Unit tests for the migration helpers."""
from unittest.mock import MagicMock, patch

import pytest

from legacy_release import migrations


class TestMigrationHelpers:
    """Test URL handling and orchestration of the migration steps."""

    @pytest.mark.parametrize("url,expected", [
        ("postgresql+asyncpg://u:p@h/db", "postgresql://u:p@h/db"),
        ("postgres://u:p@h/db", "postgresql://u:p@h/db"),
        ("postgresql://u:p@h/db", "postgresql://u:p@h/db"),
    ])
    def test_to_sync_url(self, url, expected):
        assert migrations.to_sync_url(url) == expected

    def test_alembic_config_points_at_package(self):
        cfg = migrations.build_alembic_config("postgresql+asyncpg://u:p%40ss@h/db")
        assert cfg.get_main_option("script_location").endswith("alembic")
        assert cfg.get_main_option("sqlalchemy.url") == "postgresql://u:p%40ss@h/db"

    def test_migrate_runs_steps_in_order(self):
        calls = []
        with patch.object(migrations, "check_compatibility", side_effect=lambda url: calls.append("check")), \
                patch.object(migrations, "run_alembic_migrations", side_effect=lambda url, rev: calls.append(("upgrade", rev))), \
                patch.object(migrations, "verify_schema", side_effect=lambda url: calls.append("verify") or []):
            assert migrations.migrate("postgresql://h/db", "head") == []
        assert calls == ["check", ("upgrade", "head"), "verify"]

    def test_verify_schema_reports_missing(self):
        cursor = MagicMock()
        cursor.__enter__.return_value = cursor
        cursor.fetchone.side_effect = lambda: (cursor.last != "audit_log",)

        def execute(query, params=None):
            cursor.last = params[0] if params else None

        cursor.execute.side_effect = execute
        conn = MagicMock()
        conn.cursor.return_value = cursor

        with patch.object(migrations.psycopg2, "connect", return_value=conn), \
                patch.object(migrations, "validate_database_compatibility_sync"):
            missing = migrations.verify_schema("postgresql://h/db")

        assert missing == ["audit_log"]
        conn.close.assert_called_once()

    def test_upgrade_invokes_alembic(self):
        with patch.object(migrations.command, "upgrade") as upgrade:
            migrations.run_alembic_migrations("postgresql://h/db", "head")
        _, revision = upgrade.call_args.args
        assert revision == "head"
