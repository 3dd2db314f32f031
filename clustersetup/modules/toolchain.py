"""Isolated toolchain environments for dependency-heavy stages.

A toolchain is a virtual environment created on first use and reused
afterwards. Activation never touches ``os.environ``: it yields an
environment mapping for child processes, valid only inside the
``activated()`` block.
"""
import logging
import os
import subprocess
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Mapping, Optional

from ..errors import MissingPathError, ProvisionError
from ..logging import info

logger = logging.getLogger("clustersetup.toolchain")

Runner = Callable[..., subprocess.CompletedProcess]


class Toolchain:
    """A named virtual environment with a pinned requirements manifest."""

    def __init__(
        self,
        path: Path,
        requirements: Path,
        python: str = "python3",
        runner: Runner = subprocess.run,
    ):
        self.path = Path(path)
        self.requirements = Path(requirements)
        self.python = python
        self.runner = runner

    @property
    def bin_dir(self) -> Path:
        return self.path / "bin"

    @property
    def interpreter(self) -> Path:
        return self.bin_dir / "python"

    def exists(self) -> bool:
        return self.path.is_dir()

    def environment(self, base_env: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Child-process environment with this toolchain first on PATH."""
        env = dict(os.environ if base_env is None else base_env)
        env.pop("PYTHONHOME", None)
        env["VIRTUAL_ENV"] = str(self.path)
        env["PATH"] = os.pathsep.join(filter(None, [str(self.bin_dir), env.get("PATH", "")]))
        return env

    def _run(self, step: str, cmd: List[str], env: Optional[Mapping[str, str]] = None) -> None:
        logger.debug("Toolchain %s: %s", step, " ".join(cmd))
        try:
            result = self.runner(cmd, env=env, stdout=subprocess.DEVNULL, check=False)
        except OSError as e:
            logger.error(f"Failed to launch {cmd[0]}: {e}")
            raise ProvisionError(step, 127) from e
        if result.returncode != 0:
            raise ProvisionError(step, result.returncode)

    def create(self) -> bool:
        """Create the environment if it is absent.

        Returns:
            bool: True if a new environment was created
        """
        if self.exists():
            logger.debug("Reusing toolchain at %s", self.path)
            return False
        info(f"Creating Kubespray virtualenv at {self.path}")
        self._run("create", [self.python, "-m", "venv", str(self.path)])
        return True

    def sync(self, env: Mapping[str, str]) -> None:
        """Upgrade pip, then install the pinned requirements."""
        if not self.requirements.is_file():
            raise MissingPathError(self.requirements, hint="Toolchain requirements manifest not found.")
        info("Ensuring Kubespray requirements are installed")
        python = str(self.interpreter)
        self._run("upgrade pip", [python, "-m", "pip", "install", "--upgrade", "pip"], env=env)
        self._run("install requirements",
                  [python, "-m", "pip", "install", "-r", str(self.requirements)], env=env)

    @contextmanager
    def activated(self, base_env: Optional[Mapping[str, str]] = None) -> Iterator[Dict[str, str]]:
        """Ensure, sync and activate the toolchain for the duration of the block.

        Yields:
            dict: Environment for child processes of the owning stage

        Raises:
            ProvisionError: If creation or dependency installation fails
        """
        self.create()
        env = self.environment(base_env)
        self.sync(env)
        logger.info("Activated toolchain %s", self.path)
        try:
            yield env
        finally:
            logger.info("Deactivated toolchain %s", self.path)
