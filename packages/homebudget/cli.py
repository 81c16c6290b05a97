"""Typer console interface for ``homebudget``.

A thin shell over the library: each command loads settings from the
environment (after reading a local ``.env`` with ``python-dotenv``), builds a
:class:`~db.store.SqlStore`, and delegates to the ingest, categorization or
reconciliation modules.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from db.store import SqlStore, StoreError

from .categorization import CategorizationCascade
from .errors import FormatDetectionError, NormalizationError
from .logging_setup import configure_logging
from .settings import Settings

# ---- Small module-level helpers used by CLI commands -------------------------


def _settings(database_url: str | None) -> Settings:
    settings = Settings.from_env()
    if database_url:
        settings = settings.model_copy(update={"database_url": database_url})
    return settings


def _cascade(store: SqlStore, settings: Settings) -> CategorizationCascade:
    service = None
    if settings.openai_api_key:
        # ai_enabled only gates the generative stage inside the cascade.
        # Deferred import keeps the OpenAI SDK off the import path for store-only commands.
        from .openai_client import OpenAICompletionService

        service = OpenAICompletionService.from_settings(settings)
    return CategorizationCascade.build(store, settings, service=service)


def _fail(message: str) -> typer.Exit:
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(1)


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank CSV exports, categorize transactions and reconcile them "
        "against bills. Loads DATABASE_URL and OPENAI_API_KEY from a local .env."
    ),
)

# Shared through ``Annotated`` so the call stays out of the parameter default.
CSV_PATH_OPTION: OptionInfo = typer.Option(
    ...,
    "--csv-path",
    help="Path to a bank-exported CSV file.",
    dir_okay=False,
    file_okay=True,
    exists=False,
    readable=True,
)


@app.command("import-csv")
def import_csv_cmd(
    csv_path: Annotated[Path, CSV_PATH_OPTION],
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Normalize, categorize and store one CSV export."""

    from .ingest import import_csv

    settings = _settings(database_url)
    try:
        text = csv_path.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise _fail(f"cannot read '{csv_path}': {e}") from e

    store = SqlStore(settings.database_url)
    try:
        result = import_csv(
            store,
            csv_path.name,
            text,
            cascade=_cascade(store, settings),
            batch_size=settings.batch_size,
            delay=settings.batch_delay,
        )
    except (FormatDetectionError, NormalizationError) as e:
        raise _fail(str(e)) from e
    except StoreError as e:
        raise _fail(f"database error: {e}") from e

    typer.echo(
        f"{result.filename}: bank={result.bank_detected} imported={result.imported} "
        f"failed={result.failed} duplicates={result.duplicates} status={result.status}"
    )


@app.command("recategorize")
def recategorize_cmd(
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    only_uncategorized: bool = typer.Option(
        False, help="Only process transactions without a category."
    ),
) -> None:
    """Re-run the categorization cascade over stored transactions."""

    from .categorize import recategorize_all

    settings = _settings(database_url)
    store = SqlStore(settings.database_url)
    try:
        summary = recategorize_all(
            store,
            _cascade(store, settings),
            only_uncategorized=only_uncategorized,
            batch_size=settings.batch_size,
            delay=settings.batch_delay,
        )
    except StoreError as e:
        raise _fail(f"database error: {e}") from e
    typer.echo(
        f"processed={summary.processed} updated={summary.updated} errors={summary.errors}"
    )


@app.command("reconcile")
def reconcile_cmd(
    year: int = typer.Option(..., help="Calendar year of the period."),
    month: int = typer.Option(..., min=1, max=12, help="Calendar month (1-12)."),
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    apply: bool = typer.Option(False, help="Write fuzzy matches back to the database."),
) -> None:
    """Match a month's transactions against its bills."""

    from .matching import MatchConfig
    from .reconciliation import apply_matches, reconcile_period

    settings = _settings(database_url)
    store = SqlStore(settings.database_url)
    try:
        result = reconcile_period(store, year, month, MatchConfig.from_settings(settings))
        applied = apply_matches(store, result) if apply else 0
    except StoreError as e:
        raise _fail(f"database error: {e}") from e

    for m in result.matched:
        typer.echo(
            f"{m.transaction.id}\t{m.bill.id}\t{m.confidence:.3f}\t{m.method}\t{m.rationale}"
        )
    counts = " ".join(f"{k}={v}" for k, v in result.summary.items())
    typer.echo(f"{counts} applied={applied}")


@app.command("build-patterns")
def build_patterns_cmd(
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
) -> None:
    """Learn matching patterns from manually matched transactions."""

    from .patterns import build_matching_patterns

    settings = _settings(database_url)
    try:
        learned = build_matching_patterns(SqlStore(settings.database_url))
    except StoreError as e:
        raise _fail(f"database error: {e}") from e
    typer.echo(f"learned={learned}")


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
