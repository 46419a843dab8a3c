"""CLI for the sleephrv overnight HRV toolkit."""

import click

from sleephrv.analytics.artifacts import CorrectionMethod
from sleephrv.analytics.selection import SelectionMethod


def _load(file: str):
    from sleephrv.importer import ImportFormatError, load_rr_file

    try:
        return load_rr_file(file)
    except ImportFormatError as exc:
        raise click.ClickException(f"{file}: {exc}") from exc


def _config(path: str | None):
    from sleephrv.config import EngineConfig, load_config

    if path is None:
        return EngineConfig()
    try:
        return load_config(path)
    except ValueError as exc:
        raise click.ClickException(f"{path}: {exc}") from exc


def _minutes_to_ms(value: float | None) -> int | None:
    return None if value is None else int(round(value * 60000))


@click.group()
def main() -> None:
    """sleephrv: overnight HRV artifact handling and recovery window selection."""


@main.command("analyze")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--sleep-start-min", default=None, type=float,
              help="Sleep onset, minutes after the first beat.")
@click.option("--wake-min", default=None, type=float,
              help="Wake time, minutes after the first beat.")
@click.option("--method", "-m", default=SelectionMethod.CONSOLIDATED_RECOVERY.value,
              type=click.Choice([m.value for m in SelectionMethod if m is not SelectionMethod.CUSTOM]),
              help="Window selection method.")
@click.option("--correction", "-c", default=CorrectionMethod.NONE.value,
              type=click.Choice([m.value for m in CorrectionMethod]),
              help="Artifact correction applied before selection.")
@click.option("--position-min", default=None, type=float,
              help="Center a manual window at this many minutes after the first beat.")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, dir_okay=False),
              help="TOML file overriding engine thresholds.")
@click.option("--output", "-o", default=None, help="Write the report JSON to file.")
@click.option("--verbose", "-v", is_flag=True, help="Log engine diagnostics to stderr.")
def analyze_cmd(
    file: str,
    sleep_start_min: float | None,
    wake_min: float | None,
    method: str,
    correction: str,
    position_min: float | None,
    config_path: str | None,
    output: str | None,
    verbose: bool,
) -> None:
    """Verify a recording, select its recovery window and compute HRV."""
    from sleephrv.analytics.pipeline import run_pipeline
    from sleephrv.events import setup_logging

    setup_logging(verbose=verbose)
    series = _load(file)
    report = run_pipeline(
        series,
        config=_config(config_path),
        sleep_start_ms=_minutes_to_ms(sleep_start_min),
        wake_ms=_minutes_to_ms(wake_min),
        method=method,
        correction=correction,
        position_ms=_minutes_to_ms(position_min),
    )

    click.echo(f"\n{'=' * 60}")
    click.echo(f"  Recording:  {report.beat_count} beats, {report.duration_minutes:.1f} min")
    click.echo(f"  Artifacts:  {report.artifact_pct:.1f}%")
    click.echo(f"  Quality:    {report.verification.summary}")
    for message in report.verification.errors:
        click.echo(f"    - {message}")
    for message in report.verification.warnings:
        click.echo(f"    ! {message}")

    if report.verification.passed:
        window = report.recovery_window
        if window is not None:
            click.echo(f"  Window:     {window.selection_reason}")
        else:
            click.echo(f"  Window:     none ({report.no_window_reason})")
        peak = report.peak_capacity
        if peak is not None:
            click.echo(f"  Peak:       RMSSD {peak.peak_rmssd:.1f} ms "
                       f"at {peak.window_relative_position:.0%} of recording")

        metrics = report.metrics
        td = metrics.time_domain if metrics else None
        if td is not None:
            click.echo(f"  Analyzed:   {report.analysis_source}")
            click.echo(f"  RMSSD:      {td.rmssd:.1f} ms (SDNN {td.sdnn:.1f} ms)")
            click.echo(f"  Mean HR:    {td.mean_hr:.0f} bpm")
        fd = metrics.frequency_domain if metrics else None
        if fd is not None and fd.lf_hf_ratio is not None:
            click.echo(f"  LF/HF:      {fd.lf_hf_ratio:.2f}")
        nl = metrics.nonlinear if metrics else None
        if nl is not None and nl.dfa_alpha1 is not None:
            click.echo(f"  DFA α1:     {nl.dfa_alpha1:.2f}")
        if metrics is not None and metrics.readiness is not None:
            click.echo(f"  Readiness:  {metrics.readiness.score:.1f}/10")
    click.echo(f"{'=' * 60}")

    if output:
        with open(output, "w") as f:
            f.write(report.to_json())
        click.echo(f"\nReport written to {output}")


@main.command("verify")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--streaming", is_flag=True, help="Use the relaxed live-session thresholds.")
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, dir_okay=False),
              help="TOML file overriding engine thresholds.")
def verify_cmd(file: str, streaming: bool, config_path: str | None) -> None:
    """Run the recording quality gate; exits 1 when rejected."""
    from sleephrv.analytics.pipeline import AnalysisEngine

    series = _load(file)
    with AnalysisEngine(_config(config_path)) as engine:
        result = engine.verify(series, streaming=streaming)

    click.echo(result.summary)
    for reason in result.ordered_reasons():
        click.echo(f"  {reason.display_name}: {reason.explanation}")
    for message in result.errors:
        click.echo(f"  - {message}")
    for message in result.warnings:
        click.echo(f"  ! {message}")
    if not result.passed:
        raise SystemExit(1)


@main.command("artifacts")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--config", "config_path", default=None, type=click.Path(exists=True, dir_okay=False),
              help="TOML file overriding the [artifacts] thresholds.")
def artifacts_cmd(file: str, config_path: str | None) -> None:
    """Print artifact counts by type."""
    from sleephrv.analytics.artifacts import artifact_percentage, count_by_type, detect_artifacts

    series = _load(file)
    flags = detect_artifacts(series, _config(config_path).artifacts)
    click.echo(f"{len(series)} beats, {artifact_percentage(flags):.1f}% artifacts")
    for name, count in count_by_type(flags).items():
        click.echo(f"  {name:<10} {count}")


if __name__ == "__main__":
    main()
