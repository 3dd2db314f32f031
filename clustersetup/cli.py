import logging
from pathlib import Path
from typing import Optional

import typer

from clustersetup.config import PipelineConfig
from clustersetup.errors import EXIT_USAGE, ClusterSetupError, UnknownStageError
from clustersetup.logging import console, err, info, setup_logging
from clustersetup.modules.stages import STAGE_DESCRIPTIONS, STAGE_NAMES, normalize_stage_name, resolve_start
from clustersetup.pipeline import Pipeline

logger = logging.getLogger("clustersetup.cli")

# One paragraph per line so both click and rich help keep the layout
EPILOG = "\n\n".join(
    ["Steps (in order):"]
    + [f"  {name:<12}- {STAGE_DESCRIPTIONS[name]}" for name in STAGE_NAMES]
    + [
        "Examples:",
        "  cluster-setup                          # run all steps",
        "  cluster-setup --start-from=kubespray   # start at kubespray and continue",
        "  cluster-setup postcluster              # start at postcluster and continue",
    ]
)

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

app = typer.Typer(add_completion=False, context_settings=CONTEXT_SETTINGS)


def usage_error(ctx: typer.Context, message: str) -> None:
    err(message)
    typer.echo(ctx.get_help())
    raise typer.Exit(code=EXIT_USAGE)


@app.command(epilog=EPILOG, context_settings=CONTEXT_SETTINGS)
def main(
    ctx: typer.Context,
    stage: Optional[str] = typer.Argument(None, metavar="[STEP]", help="Step to start from"),
    start_from: Optional[str] = typer.Option(None, "--start-from", metavar="STEP", help="Step to start from"),
    config_file: Optional[Path] = typer.Option(None, "--config", "-c", help="YAML pipeline config file"),
    kubeconfig_mode: Optional[str] = typer.Option(
        None, "--kubeconfig-mode", help="How to obtain admin.conf: 'remote' (ssh) or 'local' (kubespray artifact)"
    ),
    list_stages: bool = typer.Option(False, "--list", help="List steps and exit"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would run without running it"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """Orchestrate full cluster setup end-to-end."""
    setup_logging(debug)
    if debug:
        logger.debug("Debug mode enabled")

    if list_stages:
        for name in STAGE_NAMES:
            typer.echo(f"{name:<12} {STAGE_DESCRIPTIONS[name]}")
        raise typer.Exit()

    if stage and start_from and normalize_stage_name(stage) != normalize_stage_name(start_from):
        usage_error(ctx, f"Conflicting start steps: {stage} and --start-from={start_from}")
    start = start_from or stage

    try:
        # Reject unknown steps before touching config or the filesystem
        resolve_start(start)
    except UnknownStageError:
        usage_error(ctx, f"Unknown argument: {start}")

    try:
        config = PipelineConfig.load(config_file=config_file, kubeconfig_mode=kubeconfig_mode)
        run = Pipeline(config, dry_run=dry_run).run(start)
    except ClusterSetupError as e:
        err(e.message)
        logger.debug("Pipeline aborted", exc_info=True)
        raise typer.Exit(code=e.exit_code)
    except KeyboardInterrupt:
        err("Interrupted; re-run with --start-from=<step> once the cause is fixed")
        raise typer.Exit(code=130)

    if run.kubeconfig:
        info("Tip: add these to your ~/.bashrc for future shells:")
        typer.echo(f'  export KUBECONFIG="{run.kubeconfig}"')
        typer.echo("  alias k=kubectl")

    if dry_run:
        console.print("\nDry run complete, nothing was executed.", style="bold green", markup=False)
        info(f"Would run: {', '.join(run.executed)}")
    else:
        console.print("\nAll selected steps completed successfully!", style="bold green", markup=False)
        info(f"Executed: {', '.join(run.executed)}")
    if run.skipped:
        info(f"Skipped: {', '.join(run.skipped)}")


if __name__ == "__main__":
    app()
