"""Command line interface for browsing and running catalog queries."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

import click

from ..binder import ParameterBinder
from ..catalog import Catalog, Category, QueryDefinition, load_catalog
from ..config import Config, DataSourceConfig, load_config
from ..datasources import ExecutionAdapter, ResultSet, create_adapter
from ..datasources.factory import ADAPTER_TYPES
from ..demo import seed_demo_data
from ..errors import QueryCatalogError
from ..processor import BatchOutcome, QueryRunner, run_with_retries
from ..utils.logging import setup_logging
from ..validate import Report

logger = logging.getLogger(__name__)

EXIT_ASSERTION_FAILED = 1
EXIT_ERROR = 2

DEMO_NOTE = "Using in-memory DuckDB data source with demo sales data."


class ResultPrinter:
    """Formats result sets as bordered text tables."""

    def __init__(self, emit):
        self.emit = emit

    def display(self, result: ResultSet, elapsed_ms: float, max_rows: Optional[int] = None) -> None:
        rows = self._build_rows(result, max_rows)
        for line in self._format_table(result.columns, rows):
            self.emit(line)
        summary = f"{result.row_count} rows in {elapsed_ms:.2f} ms"
        if len(rows) < result.row_count:
            summary += f" (showing first {len(rows)})"
        self.emit(summary)

    def _build_rows(self, result: ResultSet, max_rows: Optional[int]) -> List[List[object]]:
        table = result.table
        if max_rows is not None:
            table = table.slice(0, max_rows)
        columns = [column.to_pylist() for column in table.columns]
        return [list(values) for values in zip(*columns)]

    def _format_table(self, headers: List[str], rows: List[List[object]]) -> List[str]:
        widths = self._compute_widths(headers, rows)
        border = self._build_border(widths)
        lines = [border, self._format_row(headers, widths), border]
        for row in rows:
            lines.append(self._format_row([self._stringify_cell(v) for v in row], widths))
        lines.append(border)
        return lines

    def _compute_widths(self, headers: List[str], rows: List[List[object]]) -> List[int]:
        widths = [len(header) for header in headers]
        for row in rows:
            for index, value in enumerate(row):
                widths[index] = max(widths[index], len(self._stringify_cell(value)))
        return widths

    def _build_border(self, widths: List[int]) -> str:
        return "+" + "+".join("-" * (width + 2) for width in widths) + "+"

    def _format_row(self, values: List[str], widths: List[int]) -> str:
        cells = [f" {value.ljust(width)} " for value, width in zip(values, widths)]
        return "|" + "|".join(cells) + "|"

    def _stringify_cell(self, value: object) -> str:
        if value is None:
            return "NULL"
        return str(value)


class CatalogPrinter:
    """Prints catalog contents and single definitions."""

    def __init__(self, emit):
        self.emit = emit

    def display_catalog(self, catalog: Catalog, category: Optional[str] = None) -> None:
        definitions = catalog.list(category)
        if not definitions:
            self.emit("Catalog is empty.")
            return
        current = None
        for definition in definitions:
            if definition.category != current:
                current = definition.category
                header = f"{current.value}:"
                self.emit(header)
            dialects = ", ".join(definition.dialects)
            self.emit(f"  {definition.id:<45} {definition.intent} [{dialects}]")

    def display_definition(self, definition: QueryDefinition, dialect: Optional[str] = None) -> None:
        header = f"Query: {definition.id}"
        self.emit(header)
        self.emit("-" * len(header))
        self.emit(f"Category: {definition.category.value}")
        self.emit(f"Intent: {definition.intent}")
        if not definition.deterministic:
            self.emit("Deterministic: no (row contents vary between runs)")
        self._print_parameters(definition)
        self._print_templates(definition, dialect)
        self._print_list("Edge cases", definition.edge_cases)
        self._print_list("Expectations", [e.describe() for e in definition.expectations])

    def _print_parameters(self, definition: QueryDefinition) -> None:
        if not definition.parameters:
            self.emit("Parameters: none")
            return
        self.emit("Parameters:")
        for parameter in definition.parameters:
            line = f"  - {parameter.name}: {parameter.type.value}"
            line += " required" if parameter.required else " optional"
            if parameter.has_default:
                line += f", default {parameter.default}"
            if parameter.choices:
                line += f", one of {list(parameter.choices)}"
            self.emit(line)

    def _print_templates(self, definition: QueryDefinition, dialect: Optional[str]) -> None:
        for name, sql in definition.templates.items():
            if dialect is not None and name != dialect:
                continue
            self.emit(f"Template ({name}):")
            for line in sql.splitlines():
                self.emit(f"    {line}")

    def _print_list(self, title: str, items) -> None:
        if not items:
            return
        self.emit(f"{title}:")
        for item in items:
            self.emit(f"  - {item}")


class ReportPrinter:
    """Prints validation reports and batch summaries."""

    def __init__(self, emit):
        self.emit = emit

    def display_report(self, report: Report) -> None:
        for assertion in report.assertions:
            status = "PASS" if assertion.passed else "FAIL"
            self.emit(f"  [{status}] {assertion.description} ({assertion.detail})")
        verdict = "passed" if report.passed else "FAILED"
        attempts = f", {report.attempts} attempts" if report.attempts > 1 else ""
        self.emit(
            f"{report.query_id} [{report.dialect}]: {verdict}, "
            f"{report.row_count} rows{attempts}"
        )

    def display_outcomes(self, outcomes: List[BatchOutcome]) -> Tuple[int, int, int]:
        passed = failed = errors = 0
        for outcome in outcomes:
            if outcome.error is not None:
                errors += 1
                self.emit(f"ERROR {outcome.query_id}: {outcome.error}")
                continue
            report = outcome.report
            if report.passed:
                passed += 1
                self.emit(
                    f"PASS  {outcome.query_id} ({report.row_count} rows, "
                    f"{report.elapsed_ms:.2f} ms)"
                )
            else:
                failed += 1
                self.emit(f"FAIL  {outcome.query_id}")
                for assertion in report.failed_assertions:
                    self.emit(f"      {assertion.description}: {assertion.detail}")
        self.emit(f"{passed} passed, {failed} failed, {errors} errors")
        return passed, failed, errors


class QcatRuntime:
    """Configuration, catalog and adapters shared by the CLI commands.

    The catalog and the adapters are created on first use, so commands that
    only inspect the catalog never open a backend connection.
    """

    def __init__(self, config: Config, catalog_paths: Tuple[str, ...] = (), note: str = ""):
        self.config = config
        self.catalog_paths = list(config.catalog.paths) + list(catalog_paths)
        self.note = note
        self._catalog: Optional[Catalog] = None
        self._runner: Optional[QueryRunner] = None
        self._adapters: List[ExecutionAdapter] = []

    @property
    def seed_demo(self) -> bool:
        return bool(self.note)

    @property
    def catalog(self) -> Catalog:
        if self._catalog is None:
            self._catalog = load_catalog(
                self.catalog_paths, include_builtin=self.config.catalog.include_builtin
            )
        return self._catalog

    @property
    def runner(self) -> QueryRunner:
        if self._runner is None:
            adapters = self._create_adapters()
            self._runner = QueryRunner(
                self.catalog,
                adapters,
                default_timeout=self.config.executor.statement_timeout_seconds,
            )
        return self._runner

    def default_dialect(self) -> str:
        """Dialect of the first configured data source."""
        for ds_config in self.config.datasources.values():
            adapter_cls = ADAPTER_TYPES.get(ds_config.type)
            if adapter_cls is not None:
                return adapter_cls.dialect
        return "duckdb"

    def _create_adapters(self) -> Dict[str, ExecutionAdapter]:
        adapters: Dict[str, ExecutionAdapter] = {}
        for ds_config in self.config.datasources.values():
            adapter = create_adapter(ds_config, self.config.executor)
            if adapter.dialect in adapters:
                logger.warning(
                    f"Data source {ds_config.name} ignored: dialect "
                    f"'{adapter.dialect}' already served by {adapters[adapter.dialect].name}"
                )
                continue
            self._adapters.append(adapter)
            # Only the demo source connects here; the rest connect on first execute.
            if self.seed_demo and adapter.dialect == "duckdb":
                adapter.ensure_connected()
                seed_demo_data(adapter.connection)
            adapters[adapter.dialect] = adapter
        return adapters

    def close(self) -> None:
        for adapter in self._adapters:
            adapter.disconnect()
        self._adapters = []
        self._runner = None


def _build_default_config() -> Config:
    config = Config()
    ds_config = DataSourceConfig(
        name="duckdb_mem",
        type="duckdb",
        config={"path": ":memory:", "read_only": False},
    )
    config.datasources[ds_config.name] = ds_config
    return config


def _load_config_bundle(config_path: Optional[str]) -> Tuple[Config, str]:
    if config_path:
        return load_config(config_path), ""
    return _build_default_config(), DEMO_NOTE


def parse_parameters(pairs: Tuple[str, ...]) -> Dict[str, str]:
    """Turn ``name=value`` pairs into a mapping.

    Values stay text; the binder converts them to the declared types.
    """
    values: Dict[str, str] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        name = name.strip()
        if not sep or not name:
            raise click.BadParameter(f"expected name=value, got '{pair}'", param_hint="-p")
        values[name] = value
    return values


def _fail(ctx: click.Context, error: Exception) -> None:
    click.echo(f"error: {error}", err=True)
    ctx.exit(EXIT_ERROR)


dialect_option = click.option(
    "-d",
    "--dialect",
    help="Dialect variant to use. Defaults to the first configured data source.",
)
parameter_option = click.option(
    "-p",
    "--param",
    "params",
    multiple=True,
    metavar="NAME=VALUE",
    help="Parameter value. Repeat for several parameters.",
)
category_option = click.option(
    "--category",
    type=click.Choice([c.value for c in Category]),
    help="Restrict to one query category.",
)


@click.group()
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, readable=True),
    help="Path to YAML config file. Defaults to an in-memory DuckDB demo.",
)
@click.option(
    "--catalog",
    "catalog_paths",
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, readable=True),
    help="Additional catalog YAML file. May be repeated.",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level (default: from config, WARNING for the demo).",
)
@click.option("--structured-logs", is_flag=True, help="Emit JSON log records.")
@click.pass_context
def cli(
    ctx: click.Context,
    config_path: Optional[str],
    catalog_paths: Tuple[str, ...],
    log_level: Optional[str],
    structured_logs: bool,
) -> None:
    """Browse, bind and run the example query catalog."""
    config, note = _load_config_bundle(config_path)
    if log_level is None:
        log_level = config.logging.level if config_path else "WARNING"
    setup_logging(
        level=log_level,
        structured=structured_logs or config.logging.structured,
        log_file=config.logging.log_file,
    )
    runtime = QcatRuntime(config, catalog_paths, note)
    ctx.obj = runtime
    ctx.call_on_close(runtime.close)


@cli.command("list")
@category_option
@click.pass_context
def list_queries(ctx: click.Context, category: Optional[str]) -> None:
    """List catalog queries grouped by category."""
    runtime: QcatRuntime = ctx.obj
    try:
        catalog = runtime.catalog
    except QueryCatalogError as e:
        _fail(ctx, e)
    CatalogPrinter(click.echo).display_catalog(catalog, category)


@cli.command()
@click.argument("query_id")
@dialect_option
@click.pass_context
def show(ctx: click.Context, query_id: str, dialect: Optional[str]) -> None:
    """Show one query's intent, parameters, templates and expectations."""
    runtime: QcatRuntime = ctx.obj
    try:
        definition = runtime.catalog.get(query_id)
    except QueryCatalogError as e:
        _fail(ctx, e)
    CatalogPrinter(click.echo).display_definition(definition, dialect)


@cli.command()
@click.argument("query_id")
@dialect_option
@parameter_option
@click.pass_context
def bind(ctx: click.Context, query_id: str, dialect: Optional[str], params: Tuple[str, ...]) -> None:
    """Print the bound SQL and values without executing anything."""
    runtime: QcatRuntime = ctx.obj
    dialect = dialect or runtime.default_dialect()
    values = parse_parameters(params)
    try:
        definition = runtime.catalog.get(query_id)
        statement = ParameterBinder().bind(definition, dialect, values)
    except QueryCatalogError as e:
        _fail(ctx, e)
    click.echo(statement.sql)
    click.echo(f"-- values ({statement.param_style.value}): {list(statement.values)!r}")


@cli.command()
@click.argument("query_id")
@dialect_option
@parameter_option
@click.option("--timeout", type=float, help="Statement deadline in seconds.")
@click.option(
    "--retries",
    type=click.IntRange(min=0),
    default=0,
    show_default=True,
    help="Extra attempts after a connection failure.",
)
@click.option(
    "--backoff",
    type=float,
    default=0.5,
    show_default=True,
    help="Delay before the first retry, doubled after each one.",
)
@click.option("--explain", is_flag=True, help="Show the backend plan instead of running.")
@click.option("--rows", "max_rows", type=click.IntRange(min=0), default=20, show_default=True,
              help="Maximum result rows to print.")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON.")
@click.pass_context
def run(
    ctx: click.Context,
    query_id: str,
    dialect: Optional[str],
    params: Tuple[str, ...],
    timeout: Optional[float],
    retries: int,
    backoff: float,
    explain: bool,
    max_rows: int,
    as_json: bool,
) -> None:
    """Run one query and check its expectations."""
    runtime: QcatRuntime = ctx.obj
    dialect = dialect or runtime.default_dialect()
    values = parse_parameters(params)
    if runtime.note and not as_json:
        click.echo(runtime.note)

    try:
        runner = runtime.runner
        if explain:
            _explain(runner, query_id, dialect, values)
            return
        report = run_with_retries(
            runner,
            query_id,
            dialect,
            values,
            attempts=retries + 1,
            backoff_seconds=backoff,
            timeout=timeout,
        )
    except (QueryCatalogError, ValueError) as e:
        _fail(ctx, e)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2, default=str))
    else:
        ResultPrinter(click.echo).display(report.result, report.elapsed_ms, max_rows)
        ReportPrinter(click.echo).display_report(report)
    if not report.passed:
        ctx.exit(EXIT_ASSERTION_FAILED)


def _explain(runner: QueryRunner, query_id: str, dialect: str, values: Dict[str, Any]) -> None:
    definition = runner.catalog.get(query_id)
    adapter = runner.adapter_for(dialect)
    statement = runner.binder.bind(definition, dialect, values)
    click.echo(adapter.explain(statement))


@cli.command()
@dialect_option
@category_option
@click.option("--timeout", type=float, help="Statement deadline per query in seconds.")
@click.pass_context
def check(
    ctx: click.Context, dialect: Optional[str], category: Optional[str], timeout: Optional[float]
) -> None:
    """Run every query with its defaults and report assertion results."""
    runtime: QcatRuntime = ctx.obj
    dialect = dialect or runtime.default_dialect()
    if runtime.note:
        click.echo(runtime.note)
    try:
        outcomes = runtime.runner.run_all(dialect, category=category, timeout=timeout)
    except (QueryCatalogError, ValueError) as e:
        _fail(ctx, e)

    _, failed, errors = ReportPrinter(click.echo).display_outcomes(outcomes)
    if errors:
        ctx.exit(EXIT_ERROR)
    if failed:
        ctx.exit(EXIT_ASSERTION_FAILED)


if __name__ == "__main__":
    cli()
