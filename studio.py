"""
studio.py - NEA Studio Command Line

Headless front end for the simulation and the formalizer.

Examples:
  nea-studio run --scenario BOUNDED_STRESS --duration 30000
  nea-studio run --config studio.yaml --output json
  nea-studio compare --mode TRADITIONAL --stress
  nea-studio formalize "A pump that must never exceed 3 bar"
  nea-studio validate-config studio.yaml
"""

import json
import logging
import sys
from dataclasses import replace
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

import config_schema
from formalizer import SpecFormalizer, FormalizerStyle, render_markdown
from nea_sim import (
    SCENARIOS,
    Domain,
    PolicyMode,
    SimConfig,
    compare_results,
    export_json,
    generate_report,
    run_multiverse,
    run_simulation,
)

console = Console()
logger = logging.getLogger(__name__)


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    console.print(f"[red]✗[/red] {message}")


def print_next(command: str) -> None:
    console.print(f"\n[dim]Next:[/dim] [cyan]{command}[/cyan]")


def _resolve_config(config_path: Optional[str], scenario: Optional[str],
                    mode: Optional[str], domain: Optional[str],
                    stress: Optional[bool], seed: Optional[int]):
    """
    Merge file, preset and flags into one SimConfig.

    Precedence: flags > scenario preset > config file > defaults.

    Returns:
        (SimConfig, duration_ms or None)
    """
    duration = None
    if config_path:
        studio_config = config_schema.load(config_path)
        sim_config = studio_config.to_sim_config()
        duration = studio_config.duration_ms
    else:
        sim_config = replace(SimConfig(), auto_inject=True)

    if scenario:
        sim_config = SCENARIOS[scenario]

    changes = {}
    if mode:
        changes["mode"] = PolicyMode(mode)
    if domain:
        changes["domain"] = Domain(domain)
    if stress is not None:
        changes["stress"] = stress
    if seed is not None:
        changes["random_seed"] = seed
    if changes:
        sim_config = replace(sim_config, **changes)
    return sim_config, duration


# =============================================================================
# CLI GROUP
# =============================================================================

@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def cli(verbose: bool) -> None:
    """NEA Studio: admission-control simulation and spec formalizer."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )


_mode_choice = click.Choice([m.value for m in PolicyMode])
_domain_choice = click.Choice([d.value for d in Domain])


# --- run ---

@cli.command("run")
@click.option("--config", "-c", "config_path", type=click.Path(exists=True), help="YAML/JSON config")
@click.option("--scenario", "-s", type=click.Choice(sorted(SCENARIOS)), help="Named preset")
@click.option("--mode", "-m", type=_mode_choice)
@click.option("--domain", "-d", type=_domain_choice)
@click.option("--stress/--no-stress", default=None)
@click.option("--seed", type=int)
@click.option("--duration", type=int, help="Virtual milliseconds (default 60000)")
@click.option("--receipts", type=click.Path(), help="Append the receipt ledger as JSONL")
@click.option("--output", "-o", type=click.Choice(["rich", "json"]), default="rich")
def run_cmd(config_path, scenario, mode, domain, stress, seed, duration, receipts, output) -> None:
    """Run one headless session with automated injection."""
    try:
        sim_config, file_duration = _resolve_config(config_path, scenario, mode, domain, stress, seed)
    except (ValueError, FileNotFoundError) as e:
        print_error(str(e))
        sys.exit(2)

    duration_ms = duration or file_duration or 60_000
    logger.debug("running %s for %d ms", sim_config.scenario_name, duration_ms)
    result = run_simulation(sim_config, duration_ms=duration_ms)

    if receipts:
        with open(receipts, "a") as fh:
            written = result.final_state.receipt_ledger.write_jsonl(fh)
        logger.debug("appended %d receipts to %s", written, receipts)

    if output == "json":
        click.echo(export_json(result))
        return

    console.print(Panel(
        generate_report(result),
        title=f"[bold]{sim_config.scenario_name}[/bold]",
        border_style="green" if result.statistics["failed"] == 0 else "yellow",
    ))
    if receipts:
        print_success(f"Receipts appended to {receipts}")
    print_next(f"nea-studio compare --mode {sim_config.mode.value}")


# --- compare ---

@cli.command("compare")
@click.option("--mode", "-m", type=_mode_choice, default=PolicyMode.TRADITIONAL.value)
@click.option("--domain", "-d", type=_domain_choice, default=Domain.GENERAL.value)
@click.option("--stress/--no-stress", default=False)
@click.option("--seed", type=int, default=42)
@click.option("--duration", type=int, default=60_000)
@click.option("--output", "-o", type=click.Choice(["rich", "json"]), default="rich")
def compare_cmd(mode, domain, stress, seed, duration, output) -> None:
    """Run a mode and its counterpart under identical load."""
    first = PolicyMode(mode)
    base = SimConfig(domain=Domain(domain), stress=stress, auto_inject=True, random_seed=seed)
    configs = [
        replace(base, mode=m, scenario_name=m.value) for m in (first, first.counterpart)
    ]
    table_data = compare_results(run_multiverse(configs, duration_ms=duration))

    if output == "json":
        click.echo(json.dumps(table_data, indent=2))
        return

    table = Table(title=f"Architectural differential ({domain}{', stress' if stress else ''})")
    table.add_column("metric")
    for name in table_data:
        table.add_column(name, justify="right")
    for metric in ("completed", "failed", "refused", "failure_share", "refusal_share",
                   "final_entropy", "final_syntropy"):
        row = [metric]
        for stats in table_data.values():
            value = stats[metric]
            row.append(f"{value:.2f}" if isinstance(value, float) else str(value))
        table.add_row(*row)
    console.print(table)


# --- formalize ---

@cli.command("formalize")
@click.argument("description", required=False)
@click.option("--file", "-f", "file_path", type=click.Path(exists=True), help="Read description from file")
@click.option("--style", type=click.Choice([s.value for s in FormalizerStyle]), default=None)
@click.option("--config", "-c", "config_path", type=click.Path(exists=True))
@click.option("--output", "-o", type=click.Choice(["rich", "json"]), default="rich")
def formalize_cmd(description, file_path, style, config_path, output) -> None:
    """Turn a system description into a formal invariance spec."""
    if file_path:
        with open(file_path) as fh:
            description = fh.read()

    try:
        studio_config = config_schema.load(config_path) if config_path else config_schema.default()
    except ValueError as e:
        print_error(str(e))
        sys.exit(2)
    formalizer = SpecFormalizer(
        api_key=config_schema.resolve_api_key(),
        model_name=config_schema.resolve_model(studio_config),
        style=FormalizerStyle(style or studio_config.formalizer_style),
    )
    document = formalizer.formalize(description or "")
    if document is None:
        print_error("No specification produced (blank input, missing key, or model error)")
        sys.exit(1)

    if output == "json":
        click.echo(json.dumps(document, indent=2))
    else:
        console.print(Panel(render_markdown(document), title="[bold]Formal specification[/bold]"))


# --- validate-config ---

@cli.command("validate-config")
@click.argument("config_path", type=click.Path(exists=True))
@click.option("--output", "-o", type=click.Choice(["rich", "json"]), default="rich")
def validate_config_cmd(config_path: str, output: str) -> None:
    """Validate a studio config file."""
    try:
        config = config_schema.load(config_path)
        error = None
    except ValueError as ve:
        config = None
        error = str(ve)

    if output == "json":
        click.echo(json.dumps({
            "path": config_path,
            "valid": config is not None,
            "error": error,
            "config": config.to_dict() if config else None,
            "config_hash": config.config_hash if config else None,
        }, indent=2))
    elif config is not None:
        content = (
            f"File: {config_path}\n"
            f"Mode: {config.mode.value}    Domain: {config.domain.value}    Stress: {config.stress}\n"
            f"Capacity: {config.capacity}    Seed: {config.random_seed}\n"
            f"Formalizer: {config.formalizer_model} ({config.formalizer_style})\n"
            f"Hash: {config.config_hash}"
        )
        console.print(Panel(content, title="[bold green]Config Validation: PASSED[/bold green]",
                            border_style="green"))
        print_next(f"nea-studio run --config {config_path}")
    else:
        console.print(Panel(f"File: {config_path}\n\n[red]✗[/red] {error}",
                            title="[bold red]Config Validation: FAILED[/bold red]",
                            border_style="red"))

    if config is None:
        sys.exit(1)


# --- entry point ---

def main() -> int:
    """Entry point for the nea-studio console script."""
    try:
        cli(standalone_mode=False)
        return 0
    except click.ClickException as e:
        e.show()
        return 2
    except SystemExit as e:
        return e.code if isinstance(e.code, int) else 0


if __name__ == "__main__":
    sys.exit(main())
