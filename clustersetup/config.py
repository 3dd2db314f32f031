"""Configuration management for the cluster setup pipeline."""
import os
import shlex
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml
from dotenv import load_dotenv
from jsonschema import ValidationError, validate

from .errors import ConfigurationError

# Load environment variables from .env file if it exists
load_dotenv()

KUBECONFIG_MODES = ("remote", "local")


class Config:
    """Ambient settings with sensible defaults."""

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


CONFIG_SCHEMA = {
    "type": "object",
    "properties": {
        "lab_dir": {"type": "string"},
        "kubespray_dir": {"type": "string"},
        "toolchain_dir": {"type": "string"},
        "requirements_file": {"type": "string"},
        "python": {"type": "string"},
        "lab_inventory": {"type": "string"},
        "kubespray_inventory": {"type": "string"},
        "inventory_playbook": {"type": ["string", "null"]},
        "control_path_dir": {"type": "string"},
        "vault_password_file": {"type": ["string", "null"]},
        "kubeconfig_mode": {"type": "string", "enum": list(KUBECONFIG_MODES)},
        "kubeconfig_host": {"type": "string"},
        "kubeconfig_dest": {"type": "string"},
        "remote_kubeconfig_path": {"type": "string"},
        "ssh_opts": {"type": ["string", "array"], "items": {"type": "string"}},
        "artifact_search_roots": {"type": "array", "items": {"type": "string"}},
        "artifact_pattern": {"type": "string"},
    },
    "additionalProperties": False,
}

# Environment variable -> PipelineConfig field
ENV_OVERRIDES = {
    "ANSIBLE_VAULT_PASSWORD_FILE": "vault_password_file",
    "SSH_OPTS": "ssh_opts",
    "ANSIBLE_SSH_CONTROL_PATH_DIR": "control_path_dir",
    "CLUSTER_SETUP_KUBECONFIG_MODE": "kubeconfig_mode",
    "CLUSTER_SETUP_KUBECONFIG_HOST": "kubeconfig_host",
}


@dataclass(frozen=True)
class PipelineConfig:
    """Run context threaded through every pipeline component.

    Relative paths are resolved by :meth:`resolve`; components never read
    the process environment themselves.
    """
    root: Path = Path(".")
    lab_dir: Path = Path("lab-setup")
    kubespray_dir: Path = Path("kubespray")
    toolchain_dir: Optional[Path] = None
    requirements_file: Optional[Path] = None
    python: str = "python3"
    lab_inventory: str = "inventory/host.yaml"
    kubespray_inventory: str = "../kubespray-overlay/inventory/lab/inventory.ini"
    inventory_playbook: Optional[str] = "tools/generate-cluster-ips.yml"
    control_path_dir: Path = Path("/tmp/ansible-cp")
    vault_password_file: Optional[str] = None
    kubeconfig_mode: str = "remote"
    kubeconfig_host: str = "master1"
    kubeconfig_dest: Path = Path("admin.conf")
    remote_kubeconfig_path: str = "/etc/kubernetes/admin.conf"
    ssh_opts: List[str] = field(default_factory=list)
    artifact_search_roots: List[Path] = field(
        default_factory=lambda: [Path("kubespray"), Path("kubespray-overlay")]
    )
    artifact_pattern: str = "inventory/*/artifacts/admin.conf"

    @property
    def vault_args(self) -> List[str]:
        if self.vault_password_file:
            return ["--vault-password-file", self.vault_password_file]
        return []

    def resolve(self) -> "PipelineConfig":
        """Return a copy with every path made absolute against ``root``."""
        if self.kubeconfig_mode not in KUBECONFIG_MODES:
            raise ConfigurationError(
                f"Invalid kubeconfig mode '{self.kubeconfig_mode}' "
                f"(expected one of: {', '.join(KUBECONFIG_MODES)})"
            )
        root = Path(self.root).expanduser().resolve()

        def under(base: Path, value) -> Path:
            return (base / Path(value).expanduser()).resolve()

        kubespray_dir = under(root, self.kubespray_dir)
        return replace(
            self,
            root=root,
            lab_dir=under(root, self.lab_dir),
            kubespray_dir=kubespray_dir,
            toolchain_dir=under(root, self.toolchain_dir or kubespray_dir / ".venv"),
            requirements_file=under(root, self.requirements_file or kubespray_dir / "requirements.txt"),
            control_path_dir=Path(self.control_path_dir).expanduser(),
            kubeconfig_dest=under(root, self.kubeconfig_dest),
            artifact_search_roots=[under(root, p) for p in self.artifact_search_roots],
        )

    @classmethod
    def load(
        cls,
        root: Optional[Path] = None,
        config_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> "PipelineConfig":
        """Build a resolved config from defaults, file, environment and flags.

        Args:
            root: Repository root (defaults to the current directory)
            config_file: Optional YAML file with field overrides
            environ: Environment mapping (defaults to ``os.environ``)
            **overrides: Values from the command line; ``None`` is ignored

        Raises:
            ConfigurationError: If the config file is missing or invalid
        """
        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}

        if config_file is not None:
            values.update(load_config_file(config_file))

        for env_name, field_name in ENV_OVERRIDES.items():
            if environ.get(env_name):
                values[field_name] = environ[env_name]

        values.update({k: v for k, v in overrides.items() if v is not None})

        if isinstance(values.get("ssh_opts"), str):
            values["ssh_opts"] = shlex.split(values["ssh_opts"])
        if "kubeconfig_mode" in values:
            values["kubeconfig_mode"] = str(values["kubeconfig_mode"]).lower()

        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        return cls(root=Path(root) if root else Path.cwd(), **values).resolve()


def load_config_file(path: Path) -> Dict[str, Any]:
    """Read and validate a YAML pipeline config file."""
    path = Path(path)
    if not path.is_file():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    try:
        validate(instance=data, schema=CONFIG_SCHEMA)
    except ValidationError as ve:
        raise ConfigurationError(f"Config validation error in {path}: {ve.message}") from ve

    return data
