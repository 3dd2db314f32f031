"""Stage registry and resume controller.

The registry is fixed at build time: five named stages in a total order.
A run may only start part-way through via the resume cursor.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import PipelineConfig
from ..errors import UnknownStageError

logger = logging.getLogger("clustersetup.stages")

STAGE_NAMES: Tuple[str, ...] = ("preparing", "haproxy", "kubespray", "postcluster", "kubeconfig")

STAGE_DESCRIPTIONS = {
    "preparing": "run lab-setup/preparing.yaml",
    "haproxy": "run lab-setup/haproxy-lb.yaml",
    "kubespray": "deploy cluster with kubespray (venv + cluster.yml)",
    "postcluster": "run lab-setup/postcluster.yaml",
    "kubeconfig": "fetch kubeconfig into ./admin.conf",
}


@dataclass(frozen=True)
class Stage:
    """One named, ordered unit of pipeline work.

    ``command`` is empty for special actions (the kubeconfig retrieval),
    which the pipeline dispatches on ``action``.
    """
    name: str
    position: int
    title: str
    workdir: Path
    command: Tuple[str, ...] = ()
    uses_toolchain: bool = False
    action: Optional[str] = None
    done_message: str = ""


@dataclass
class PipelineRun:
    """Cursor plus per-stage outcome for a single invocation."""
    cursor: str
    executed: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    exported: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def kubeconfig(self) -> Optional[Path]:
        value = self.exported.get("KUBECONFIG")
        return Path(value) if value else None


def _playbook(config: PipelineConfig, inventory: str, playbook: str) -> Tuple[str, ...]:
    return ("ansible-playbook", "-i", inventory, playbook, "-b", *config.vault_args)


def build_stages(config: PipelineConfig) -> List[Stage]:
    """Build the ordered stage registry for a resolved config."""
    lab = config.lab_dir
    return [
        Stage("preparing", 0, "Running preparing playbook (lab-setup)", lab,
              _playbook(config, config.lab_inventory, "playbook/preparing.yaml"),
              done_message="Preparing playbook finished"),
        Stage("haproxy", 1, "Running HAProxy LB playbook (lab-setup)", lab,
              _playbook(config, config.lab_inventory, "playbook/haproxy-lb.yaml"),
              done_message="HAProxy LB playbook finished"),
        Stage("kubespray", 2, "Deploying cluster with Kubespray", config.kubespray_dir,
              _playbook(config, config.kubespray_inventory, "cluster.yml"),
              uses_toolchain=True,
              done_message="Kubespray cluster deployment finished"),
        Stage("postcluster", 3, "Running postcluster playbook (lab-setup)", lab,
              _playbook(config, config.lab_inventory, "playbook/postcluster.yaml"),
              done_message="Postcluster playbook finished"),
        Stage("kubeconfig", 4, f"Fetching kubeconfig to ./{config.kubeconfig_dest.name}", config.root,
              action="kubeconfig"),
    ]


def normalize_stage_name(name: Optional[str]) -> str:
    return (name or "").strip().lower()


def resolve_start(name: Optional[str], names: Sequence[str] = STAGE_NAMES) -> str:
    """Resolve the resume cursor.

    Args:
        name: Requested start stage, case-insensitive; empty means all
        names: Registered stage names in order

    Returns:
        The name of the first stage to execute

    Raises:
        UnknownStageError: If ``name`` matches no registered stage
    """
    wanted = normalize_stage_name(name)
    if not wanted:
        return names[0]
    if wanted not in names:
        raise UnknownStageError(name)
    return wanted


def select_stages(stages: Sequence[Stage], cursor: str) -> Tuple[List[Stage], List[Stage]]:
    """Split the registry into (skipped, to_run) around the cursor.

    The cursor is consumed on its first match; every stage after it runs.
    """
    skipped: List[Stage] = []
    selected: List[Stage] = []
    skip_until = cursor
    for stage in stages:
        if skip_until and stage.name == skip_until:
            skip_until = None
        if skip_until:
            skipped.append(stage)
        else:
            selected.append(stage)

    if skip_until:
        raise UnknownStageError(cursor)

    logger.debug("Cursor %s: skipping %s, running %s",
                 cursor, [s.name for s in skipped], [s.name for s in selected])
    return skipped, selected
