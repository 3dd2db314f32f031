"""Preflight checks run before any stage."""
import logging
import os
import shutil
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from ..config import PipelineConfig
from ..errors import MissingPathError, MissingToolError

logger = logging.getLogger("clustersetup.preflight")

Which = Callable[[str], Optional[str]]


def required_tools(config: PipelineConfig) -> List[str]:
    tools = ["ansible-playbook", config.python]
    if config.kubeconfig_mode == "remote":
        tools.append("ssh")
    return tools


def required_paths(config: PipelineConfig) -> List[Path]:
    return [config.lab_dir, config.kubespray_dir]


def check_tools(tools: Iterable[str], which: Which = shutil.which) -> None:
    """Raise MissingToolError for the first tool not found on PATH."""
    for tool in tools:
        location = which(tool)
        if not location:
            raise MissingToolError(tool)
        logger.debug("Found %s at %s", tool, location)


def check_paths(paths: Iterable[Path]) -> None:
    for path in paths:
        if not Path(path).exists():
            raise MissingPathError(path)


def ensure_scratch_dir(path: Path, mode: int = 0o700) -> Path:
    """Create a private scratch directory, tightening mode if it already exists."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    os.chmod(path, mode)
    logger.debug("Scratch directory ready: %s", path)
    return path


def validate(
    config: PipelineConfig,
    which: Which = shutil.which,
    tools: Optional[Iterable[str]] = None,
    paths: Optional[Iterable[Path]] = None,
    create_scratch: bool = True,
) -> None:
    """Verify tooling and repository layout, then prepare shared scratch space.

    Args:
        config: Resolved pipeline config
        which: Tool lookup, ``shutil.which`` by default
        tools: Override the required tool set
        paths: Override the required path set
        create_scratch: Create the SSH control-path directory

    Raises:
        MissingToolError: A required tool is not installed (exit 127)
        MissingPathError: A required directory/file is absent (exit 1)
    """
    check_tools(required_tools(config) if tools is None else tools, which=which)
    check_paths(required_paths(config) if paths is None else paths)
    if create_scratch:
        ensure_scratch_dir(config.control_path_dir)
