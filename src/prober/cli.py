from __future__ import annotations

import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer

from .workflows.doctor import build_doctor_report, format_doctor_report
from .workflows.probe_config import ScanConfig, parse_start_outer
from .workflows.scanner import run_scan_sync
from .workflows.template import TemplateError, URLTemplate

app = typer.Typer(add_help_option=False, no_args_is_help=False)

EXIT_USAGE = 2
EXIT_FATAL = 3
EXIT_INTERRUPTED = 130


def _minimal_help() -> str:
    return """Prober (template URL scanner)

Usage:
  prober scan <TEMPLATE> [START] [--log <FILE>] [--concurrency N] [--json]
  prober doctor

TEMPLATE contains {uid} (inner id) and {qnum} (outer key), e.g.
  prober scan "https://example.com/view/{uid}-topic-1-question-{qnum}/" 1

Common options:
  --log, -o <FILE>   Discovery log, one URL per line (default: valid_urls.log, truncated).
  --concurrency N    Probes in flight per outer key (default: 5).
  --json             Print the scan report JSON to stdout when done.

Discoverability:
  --help-full     Expanded help + env vars.
  --doctor        Run environment diagnostics and exit.
"""


def _help_full() -> str:
    return """Prober CLI

Commands:
  scan     Probe TEMPLATE for every outer key from START (default 1) to --outer-end.
  doctor   Print environment and configuration diagnostics.

Scan options:
  --log, -o FILE          Discovery log path (created fresh each run).
  --concurrency N         In-flight probe ceiling (default 5).
  --inner-start N         First inner id, inclusive (default 10000).
  --inner-end N           Last inner id, exclusive (default 80000).
  --outer-end N           Last outer key, inclusive (default 300).
  --timeout SECONDS       Per-request timeout (default 5).
  --backoff-base SECONDS  Retry n after a 429 waits base * n (default 15).
  --max-retries N         Retries after a 429 (default 3).
  --no-jitter             Disable the 100-500 ms pre-request delay.
  --fixed-user-agent UA   Send UA on every request instead of a random pick.
  --inner-token TOKEN     Inner placeholder (default {uid}).
  --outer-token TOKEN     Outer placeholder (default {qnum}).
  --json                  Print the scan report JSON to stdout.
  --log-level LEVEL       Logging level (default INFO).

Env vars:
  PROBER_CONCURRENCY, PROBER_INNER_START, PROBER_INNER_END, PROBER_OUTER_END,
  PROBER_TIMEOUT, PROBER_BACKOFF_BASE, PROBER_MAX_RETRIES,
  PROBER_JITTER_MIN_MS, PROBER_JITTER_MAX_MS, PROBER_RANDOM_USER_AGENT,
  PROBER_USER_AGENT, PROBER_DISCOVERY_LOG, PROBER_INNER_TOKEN, PROBER_OUTER_TOKEN

Stopping:
  Ctrl+C once finishes in-flight probes and exits 0; a second Ctrl+C exits 130.
"""


def _is_int(raw: str) -> bool:
    try:
        int(raw)
    except ValueError:
        return False
    return True


def _usage_error(message: str) -> NoReturn:
    typer.echo(f"error: {message}", err=True)
    typer.echo(_minimal_help(), err=True)
    raise typer.Exit(code=EXIT_USAGE)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    help: bool = typer.Option(False, "--help", "-h", is_eager=True, help="Show minimal help."),
    help_full: bool = typer.Option(False, "--help-full", is_eager=True, help="Show expanded help."),
    doctor: bool = typer.Option(False, "--doctor", is_eager=True, help="Run environment diagnostics and exit."),
) -> None:
    if help_full:
        typer.echo(_help_full())
        raise typer.Exit(code=0)
    if doctor:
        report = build_doctor_report()
        typer.echo(format_doctor_report(report))
        raise typer.Exit(code=0 if report.get("ok", True) else EXIT_USAGE)
    if help:
        typer.echo(_minimal_help())
        raise typer.Exit(code=0)
    if ctx.invoked_subcommand is None:
        typer.echo(_minimal_help(), err=True)
        raise typer.Exit(code=EXIT_USAGE)


@app.command("doctor", add_help_option=True)
def doctor_cmd() -> None:
    """Print environment and configuration diagnostics."""
    report = build_doctor_report()
    typer.echo(format_doctor_report(report))
    raise typer.Exit(code=0 if report.get("ok", True) else EXIT_USAGE)


@app.command("scan", add_help_option=True, context_settings={"ignore_unknown_options": True})
def scan_cmd(
    template: str = typer.Argument(..., help="URL template with inner and outer placeholders."),
    start: Optional[str] = typer.Argument(None, help="Starting outer key (positive integer, default 1)."),
    log: Optional[Path] = typer.Option(None, "--log", "-o", help="Discovery log path (truncated at start)."),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", help="In-flight probe ceiling."),
    inner_start: Optional[int] = typer.Option(None, "--inner-start", help="First inner id (inclusive)."),
    inner_end: Optional[int] = typer.Option(None, "--inner-end", help="Last inner id (exclusive)."),
    outer_end: Optional[int] = typer.Option(None, "--outer-end", help="Last outer key (inclusive)."),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-request timeout in seconds."),
    backoff_base: Optional[float] = typer.Option(None, "--backoff-base", help="Linear backoff base in seconds."),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", help="Retries after a 429."),
    no_jitter: bool = typer.Option(False, "--no-jitter", help="Disable pre-request jitter."),
    fixed_user_agent: Optional[str] = typer.Option(None, "--fixed-user-agent", help="Always send this User-Agent."),
    inner_token: Optional[str] = typer.Option(None, "--inner-token", help="Inner placeholder token."),
    outer_token: Optional[str] = typer.Option(None, "--outer-token", help="Outer placeholder token."),
    json_out: bool = typer.Option(False, "--json", help="Print the scan report JSON to stdout."),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level."),
) -> None:
    logging.basicConfig(level=getattr(logging, log_level.upper(), logging.INFO), format="%(message)s")

    # Unknown options land in START; only a negative number may start with a dash.
    if start is not None and start.startswith("-") and not _is_int(start):
        _usage_error(f"no such option: {start}")

    config = ScanConfig.from_env().with_overrides(
        discovery_log=log,
        concurrency=concurrency,
        inner_start=inner_start,
        inner_end=inner_end,
        outer_end=outer_end,
        timeout=timeout,
        backoff_base=backoff_base,
        max_retries=max_retries,
        inner_token=inner_token,
        outer_token=outer_token,
    )
    if no_jitter:
        config = config.with_overrides(jitter_min_ms=0, jitter_max_ms=0)
    if fixed_user_agent:
        config = config.with_overrides(random_user_agent=False, user_agent=fixed_user_agent)

    try:
        url_template = URLTemplate(template, inner_token=config.inner_token, outer_token=config.outer_token)
    except TemplateError as exc:
        _usage_error(str(exc))

    try:
        report = run_scan_sync(url_template, config, start_outer=parse_start_outer(start))
    except KeyboardInterrupt:
        typer.echo("Interrupted.", err=True)
        raise typer.Exit(code=EXIT_INTERRUPTED)
    except Exception as exc:
        typer.echo(f"fatal: {exc}", err=True)
        raise typer.Exit(code=EXIT_FATAL)
    if json_out:
        typer.echo(report.to_json())
    raise typer.Exit(code=0)
