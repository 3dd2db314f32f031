"""End-to-end cluster setup pipeline.

Steps:
  1) lab-setup/preparing.yaml          (name: preparing)
  2) lab-setup/haproxy-lb.yaml         (name: haproxy)
  3) kubespray cluster.yml (with venv) (name: kubespray)
  4) lab-setup/postcluster.yaml        (name: postcluster)
  5) kubeconfig into ./admin.conf      (name: kubeconfig)

Dynamic inventory generation runs before the first selected step on every
invocation. Execution is strictly sequential and stops at the first
failure; recovery is a manual re-run with a start stage.
"""
import logging
import shutil
import subprocess
from typing import List, Mapping, Optional, Tuple

from .config import PipelineConfig
from .logging import banner, info, ok, warn
from .modules import preflight
from .modules.executor import StageExecutor
from .modules.kubeconfig import Probe, check_connectivity, retrieve
from .modules.stages import PipelineRun, Stage, build_stages, resolve_start, select_stages
from .modules.toolchain import Runner

logger = logging.getLogger("clustersetup.pipeline")


class Pipeline:
    """Ordered, fail-fast runner over the stage registry."""

    def __init__(
        self,
        config: PipelineConfig,
        runner: Runner = subprocess.run,
        which: preflight.Which = shutil.which,
        probe: Probe = check_connectivity,
        environ: Optional[Mapping[str, str]] = None,
        dry_run: bool = False,
    ):
        self.config = config
        self.runner = runner
        self.which = which
        self.probe = probe
        self.dry_run = dry_run
        self.stages: List[Stage] = build_stages(config)
        self.executor = StageExecutor(config, runner=runner, environ=environ, dry_run=dry_run)

    def plan(self, start: Optional[str] = None) -> Tuple[str, List[Stage], List[Stage]]:
        """Resolve ``start`` into (cursor, skipped, selected) without side effects."""
        cursor = resolve_start(start, [s.name for s in self.stages])
        skipped, selected = select_stages(self.stages, cursor)
        return cursor, skipped, selected

    def generate_inventory(self) -> None:
        playbook = self.config.inventory_playbook
        if not playbook:
            logger.debug("Inventory generation disabled")
            return
        banner("Generating dynamic cluster IP variables")
        self.executor.run_command(
            "inventory",
            ["ansible-playbook", "-i", "localhost,", "-c", "local", playbook],
            self.config.root,
        )
        if not self.dry_run:
            ok("Generated dynamic IP variables")

    def fetch_kubeconfig(self, stage: Stage, run: PipelineRun) -> None:
        banner(stage.title)
        if self.dry_run:
            info(f"Would retrieve kubeconfig ({self.config.kubeconfig_mode}) into {self.config.kubeconfig_dest}")
            return

        result = retrieve(self.config, runner=self.runner, probe=self.probe)
        run.exported.update(result.export)
        info(f"KUBECONFIG set to: {result.path}")
        if not result.success:
            warn(result.warning)
            run.warnings.append(result.warning)
        ok(f"Kubeconfig written to {result.path}")

    def run(self, start: Optional[str] = None) -> PipelineRun:
        """Run every stage from ``start`` (or the first stage) to the end.

        Raises:
            UnknownStageError: ``start`` names no stage; nothing has run
            MissingToolError, MissingPathError: preflight failed
            ProvisionError, StageFailure: a stage failed; later stages did not run
            ArtifactMissingError, ArtifactEmptyError: kubeconfig retrieval failed
        """
        cursor, skipped, selected = self.plan(start)
        run = PipelineRun(cursor=cursor)
        logger.info(f"Starting pipeline at stage '{cursor}'")

        preflight.validate(self.config, which=self.which, create_scratch=not self.dry_run)
        self.generate_inventory()

        for stage in skipped:
            info(f"Skipping step: {stage.name}")
            run.skipped.append(stage.name)

        for stage in selected:
            if stage.action == "kubeconfig":
                self.fetch_kubeconfig(stage, run)
            else:
                self.executor.run(stage)
            run.executed.append(stage.name)

        return run
