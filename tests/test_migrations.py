import io
from pathlib import Path

from alembic import command
from alembic.config import Config

_ALEMBIC_DIR = Path(__file__).resolve().parents[1] / "libs" / "db" / "alembic"


def test_offline_upgrade_renders_every_budget_table(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://budget@localhost/budget")
    buf = io.StringIO()
    cfg = Config(output_buffer=buf)
    cfg.set_main_option("script_location", str(_ALEMBIC_DIR))

    command.upgrade(cfg, "head", sql=True)

    sql = buf.getvalue()
    for table in (
        "hb_transaction_categories",
        "hb_bills",
        "hb_csv_imports",
        "hb_transactions",
        "hb_categorization_rules",
        "hb_matching_patterns",
        "hb_error_logs",
    ):
        assert f"CREATE TABLE {table}" in sql
    assert "'Other'" in sql
