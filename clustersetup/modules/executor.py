"""Stage execution.

Each stage runs one external command synchronously from its own working
directory. A non-zero exit raises StageFailure and nothing after it runs.
"""
import logging
import os
import shlex
import subprocess
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Mapping, Optional, Sequence

from ..config import PipelineConfig
from ..errors import StageFailure
from ..logging import banner, info, ok
from .stages import Stage
from .toolchain import Runner, Toolchain

logger = logging.getLogger("clustersetup.executor")


@contextmanager
def pushd(path: Path) -> Iterator[Path]:
    """Change into ``path``, always restoring the previous directory."""
    previous = os.getcwd()
    os.chdir(path)
    try:
        yield Path(path)
    finally:
        os.chdir(previous)


class StageExecutor:
    """Runs stage commands with the pipeline's shared environment."""

    def __init__(
        self,
        config: PipelineConfig,
        runner: Runner = subprocess.run,
        environ: Optional[Mapping[str, str]] = None,
        dry_run: bool = False,
    ):
        self.config = config
        self.runner = runner
        self.environ = dict(os.environ if environ is None else environ)
        self.dry_run = dry_run

    def base_env(self) -> Dict[str, str]:
        env = dict(self.environ)
        env["ANSIBLE_SSH_CONTROL_PATH_DIR"] = str(self.config.control_path_dir)
        return env

    def toolchain(self) -> Toolchain:
        return Toolchain(
            self.config.toolchain_dir,
            self.config.requirements_file,
            python=self.config.python,
            runner=self.runner,
        )

    def run_command(
        self,
        name: str,
        cmd: Sequence[str],
        workdir: Path,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Run ``cmd`` from ``workdir``.

        Raises:
            StageFailure: If the command exits non-zero or cannot be launched
        """
        command = shlex.join(cmd)
        info(command)
        if self.dry_run:
            return

        logger.debug("Running %s in %s", command, workdir)
        with pushd(workdir):
            try:
                result = self.runner(list(cmd), env=dict(env or self.base_env()), check=False)
            except OSError as e:
                logger.error(f"Failed to launch {cmd[0]}: {e}")
                raise StageFailure(name, 127, command) from e

        if result.returncode != 0:
            raise StageFailure(name, result.returncode, command)

    def run(self, stage: Stage) -> None:
        """Run one command stage, wrapping it in its toolchain if it has one."""
        banner(stage.title)
        if stage.uses_toolchain and not self.dry_run:
            with self.toolchain().activated(self.base_env()) as env:
                self.run_command(stage.name, stage.command, stage.workdir, env)
        else:
            if stage.uses_toolchain:
                info(f"Would ensure toolchain at {self.config.toolchain_dir}")
            self.run_command(stage.name, stage.command, stage.workdir)
        if not self.dry_run:
            ok(stage.done_message or f"Stage {stage.name} finished")
