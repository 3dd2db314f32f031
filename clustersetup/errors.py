"""Error taxonomy for the cluster setup pipeline.

Every failure carries the process exit status the CLI should surface.
Components raise these; only the CLI turns them into exit codes.
"""
from pathlib import Path
from typing import Optional, Union

EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_MISSING_DEPENDENCY = 127


class ClusterSetupError(Exception):
    """Base class for all pipeline failures."""

    exit_code: int = EXIT_FAILURE

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if exit_code is not None:
            self.exit_code = exit_code


class MissingToolError(ClusterSetupError):
    """A required executable is not on PATH."""

    exit_code = EXIT_MISSING_DEPENDENCY

    def __init__(self, tool: str):
        super().__init__(f"Missing required command: {tool}")
        self.tool = tool


class MissingPathError(ClusterSetupError):
    """A required directory or file is absent from the repository."""

    def __init__(self, path: Union[str, Path], hint: str = "Run from repo root."):
        super().__init__(f"{hint} Missing {path}".strip())
        self.path = Path(path)


class ConfigurationError(ClusterSetupError):
    """Invalid pipeline configuration."""


class UnknownStageError(ClusterSetupError):
    """The resume cursor names no registered stage."""

    exit_code = EXIT_USAGE

    def __init__(self, name: str):
        super().__init__(f"Unknown stage: {name}")
        self.name = name


class ProvisionError(ClusterSetupError):
    """The toolchain environment could not be created or synced."""

    def __init__(self, step: str, returncode: int):
        super().__init__(f"Toolchain provisioning failed during '{step}' (exit {returncode})",
                         exit_code=_exit_status(returncode))
        self.step = step
        self.returncode = returncode


class StageFailure(ClusterSetupError):
    """An external command exited non-zero; the pipeline halts."""

    def __init__(self, stage: str, returncode: int, command: str = ""):
        message = f"Stage '{stage}' failed with exit code {returncode}"
        if command:
            message += f": {command}"
        super().__init__(message, exit_code=_exit_status(returncode))
        self.stage = stage
        self.returncode = returncode
        self.command = command


class ArtifactMissingError(ClusterSetupError):
    """No kubeconfig artifact could be located or fetched."""


class ArtifactEmptyError(ClusterSetupError):
    """The kubeconfig artifact exists but has no content."""


def _exit_status(returncode: int) -> int:
    # subprocess reports death-by-signal N as -N; shells report 128+N
    if returncode < 0:
        return 128 - returncode
    return returncode or EXIT_FAILURE
