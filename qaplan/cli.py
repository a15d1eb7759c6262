"""Command-line entry point for inspecting, exporting and applying sample plans."""

from __future__ import annotations

import asyncio
import csv
import logging
import os
import random
from datetime import date
from pathlib import Path
from typing import List, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from .client import QASamplePlanClient
from .constants import SAMPLE_TYPE_VALUES, get_assessment_method
from .core.config import AppConfig, load_app_config, merge_user_overrides
from .core.provenance import SubmissionLogger
from .learners import EXPORT_HEADERS, count_sampled_units, export_rows, learner_key, learner_planned_date
from .notifications import ConsoleNotifier
from .orchestrator import ApplySamplesOrchestrator
from .state import SelectionStateStore

ENV_CONFIG = "QAPLAN_CONFIG"
DEFAULT_CONFIG = Path("config/qaplan.yaml")

app = typer.Typer(help="Inspect and export QA sample plans, and apply manual or risk-weighted random samples.")
console = Console()


def _resolve_config_path(path: Path | None) -> Path:
    if path is not None:
        return path.expanduser().resolve()
    env_path = os.environ.get(ENV_CONFIG)
    if env_path:
        return Path(env_path).expanduser().resolve()
    return DEFAULT_CONFIG.resolve()


def _load_config(path: Path | None, user_id: str | None, role: str | None) -> AppConfig:
    resolved = _resolve_config_path(path)
    try:
        config = load_app_config(resolved)
        return merge_user_overrides(config, {"user_id": user_id, "role": role})
    except FileNotFoundError:
        typer.echo(f"Config file not found: {resolved}", err=True)
        raise typer.Exit(code=2) from None
    except ValueError as exc:
        typer.echo(f"{exc}", err=True)
        raise typer.Exit(code=2) from exc


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_client(config: AppConfig) -> QASamplePlanClient:
    return QASamplePlanClient(config.api)


def _build_orchestrator(config: AppConfig, client, *, seed: int | None = None) -> ApplySamplesOrchestrator:
    audit_path = config.sampling.audit_log_path
    seed = seed if seed is not None else config.sampling.random_seed
    return ApplySamplesOrchestrator(
        SelectionStateStore(),
        client,
        user=config.user,
        notifier=ConsoleNotifier(),
        audit_log=SubmissionLogger(audit_path) if audit_path else None,
        rng=random.Random(seed),
        course_page_size=config.sampling.course_page_size,
    )


async def _open_plan(orchestrator: ApplySamplesOrchestrator, course: str, plan: str | None) -> None:
    """Bring the orchestrator to the learners-loaded state for a course/plan."""

    if orchestrator.user.is_eqa and not plan:
        orchestrator.set_course_reference(course)
        await orchestrator.run_auto_trigger()
        return
    await orchestrator.select_course(course)
    if plan:
        orchestrator.select_plan(plan)
    elif orchestrator.store.plans:
        orchestrator.select_plan(orchestrator.store.plans[0].id)
    await orchestrator.apply_filter()


def _parse_unit_selections(values: List[str]) -> List[Tuple[str, str]]:
    selections: List[Tuple[str, str]] = []
    for raw in values:
        learner, sep, unit = raw.rpartition("=")
        if not sep or not learner.strip() or not unit.strip():
            raise typer.BadParameter(f"Expected LEARNER_KEY=UNIT_KEY, got '{raw}'")
        selections.append((learner.strip(), unit.strip()))
    return selections


@app.command()
def plans(
    course: str = typer.Option(..., "--course", help="Course id whose sample plans should be listed."),
    config: Optional[Path] = typer.Option(None, "--config", help="qaplan YAML config (defaults to $QAPLAN_CONFIG or config/qaplan.yaml)."),
    user_id: Optional[str] = typer.Option(None, "--user-id", help="Override the configured QA user id."),
    role: Optional[str] = typer.Option(None, "--role", help="Override the configured role (IQA or EQA)."),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """List the normalized sample plans for a course."""

    _configure_logging(verbose)
    app_config = _load_config(config, user_id, role)

    async def _run():
        client = build_client(app_config)
        try:
            orchestrator = _build_orchestrator(app_config, client)
            return await orchestrator.select_course(course), orchestrator.store.state.plans_error
        finally:
            await client.aclose()

    found, error = asyncio.run(_run())
    if error:
        typer.echo(error, err=True)
        raise typer.Exit(code=1)
    table = Table(title=f"Sample plans for course {course}")
    table.add_column("ID", style="cyan")
    table.add_column("Label")
    for plan in found:
        table.add_row(plan.id, plan.label)
    console.print(table)


@app.command()
def learners(
    course: str = typer.Option(..., "--course"),
    plan: Optional[str] = typer.Option(None, "--plan", help="Plan id (defaults to the first plan of the course)."),
    search: str = typer.Option("", "--search", help="Only show learners matching this text."),
    config: Optional[Path] = typer.Option(None, "--config"),
    user_id: Optional[str] = typer.Option(None, "--user-id"),
    role: Optional[str] = typer.Option(None, "--role"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Show the learners of a plan with their learner keys and risk."""

    _configure_logging(verbose)
    app_config = _load_config(config, user_id, role)

    async def _run():
        client = build_client(app_config)
        try:
            orchestrator = _build_orchestrator(app_config, client)
            await _open_plan(orchestrator, course, plan)
            orchestrator.store.set_search_text(search)
            return orchestrator
        finally:
            await client.aclose()

    orchestrator = asyncio.run(_run())
    state = orchestrator.store.state
    if state.filters.filter_error:
        typer.echo(state.filters.filter_error, err=True)
        raise typer.Exit(code=1)

    table = Table(title=f"Learners for plan {state.selected_plan}")
    table.add_column("Learner key", style="cyan")
    table.add_column("Learner")
    table.add_column("Risk %", justify="right")
    table.add_column("Units", justify="right")
    table.add_column("Sampled", justify="right")
    table.add_column("Planned date")
    for index, row in orchestrator.visible_rows():
        table.add_row(
            learner_key(row.learner_name, index),
            row.learner_name or "-",
            str(row.risk_percentage) if row.risk_percentage is not None else "-",
            str(len(row.units)),
            str(count_sampled_units(row.units)),
            learner_planned_date(row) or "-",
        )
    console.print(table)


@app.command()
def export(
    course: str = typer.Option(..., "--course"),
    plan: Optional[str] = typer.Option(None, "--plan", help="Plan id (defaults to the first plan of the course)."),
    search: str = typer.Option("", "--search", help="Only export learners matching this text."),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="CSV destination (defaults to qa-sample-plan-learners-<today>.csv).",
    ),
    config: Optional[Path] = typer.Option(None, "--config"),
    user_id: Optional[str] = typer.Option(None, "--user-id"),
    role: Optional[str] = typer.Option(None, "--role"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Write the visible learners of a plan to a CSV file."""

    _configure_logging(verbose)
    app_config = _load_config(config, user_id, role)

    async def _run():
        client = build_client(app_config)
        try:
            orchestrator = _build_orchestrator(app_config, client)
            await _open_plan(orchestrator, course, plan)
            orchestrator.store.set_search_text(search)
            return orchestrator
        finally:
            await client.aclose()

    orchestrator = asyncio.run(_run())
    state = orchestrator.store.state
    if state.filters.filter_error:
        typer.echo(state.filters.filter_error, err=True)
        raise typer.Exit(code=1)

    records = export_rows(
        orchestrator.visible_rows(),
        orchestrator.store.selected_units_map,
        course_name=state.plan_summary.course_name if state.plan_summary else None,
    )
    if not records:
        typer.echo("No data available to export", err=True)
        raise typer.Exit(code=1)

    destination = output or Path(f"qa-sample-plan-learners-{date.today():%Y-%m-%d}.csv")
    destination.parent.mkdir(parents=True, exist_ok=True)
    with destination.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle, quoting=csv.QUOTE_ALL)
        writer.writerow(EXPORT_HEADERS)
        writer.writerows(records)
    console.print(f"Data exported successfully: {len(records)} learner(s) to {destination}", markup=False, highlight=False)


@app.command()
def apply(
    course: str = typer.Option(..., "--course"),
    sample_type: str = typer.Option(..., "--sample-type", help=f"One of: {', '.join(SAMPLE_TYPE_VALUES)}."),
    plan: Optional[str] = typer.Option(None, "--plan"),
    planned_date: str = typer.Option("", "--planned-date", help="Planned sample date (YYYY-MM-DD)."),
    method: List[str] = typer.Option([], "--method", "-m", help="Assessment method code; repeat to select several (default: all)."),
    unit: List[str] = typer.Option([], "--unit", "-u", help="Manual selection as LEARNER_KEY=UNIT_KEY; repeatable."),
    random_samples: bool = typer.Option(False, "--random", help="Draw a risk-weighted random sample instead of --unit selections."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for --random (overrides sampling.random_seed)."),
    config: Optional[Path] = typer.Option(None, "--config"),
    user_id: Optional[str] = typer.Option(None, "--user-id"),
    role: Optional[str] = typer.Option(None, "--role"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Apply manual or random samples to a plan."""

    _configure_logging(verbose)
    if random_samples and unit:
        raise typer.BadParameter("--unit cannot be combined with --random")
    selections = _parse_unit_selections(unit)
    for code in method:
        if get_assessment_method(code) is None:
            raise typer.BadParameter(f"Unknown assessment method '{code}'")
    app_config = _load_config(config, user_id, role)

    async def _run():
        client = build_client(app_config)
        try:
            orchestrator = _build_orchestrator(app_config, client, seed=seed)
            await _open_plan(orchestrator, course, plan)
            store = orchestrator.store
            store.set_sample_type(sample_type)
            store.set_planned_sample_date(planned_date)
            if method:
                store.set_selected_methods(method)
            if random_samples:
                return await orchestrator.apply_random_samples()
            for learner, unit_key in selections:
                orchestrator.toggle_unit(learner, unit_key)
            return await orchestrator.apply_manual_samples()
        finally:
            await client.aclose()

    outcome = asyncio.run(_run())
    if not outcome.submitted:
        typer.echo(outcome.message or f"Samples not applied ({outcome.status}).", err=True)
        raise typer.Exit(code=1)
    if outcome.payload is not None:
        for learner in outcome.payload.learners:
            console.print(f"{learner.learner_name}: {', '.join(learner.unit_keys)}", markup=False, highlight=False)


def main() -> None:  # pragma: no cover - console script shim
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
