"""Kubeconfig retrieval, the final pipeline stage.

Two strategies are available, selected by ``kubeconfig_mode``:

- ``local``: find the admin.conf Kubespray localized under an inventory
  ``artifacts/`` directory and copy it into place.
- ``remote``: read ``/etc/kubernetes/admin.conf`` from a control-plane
  host over SSH, then probe the API server through the new credential.

Both return a KubeconfigResult instead of exporting anything; the caller
decides what to do with the path.
"""
import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from kubernetes import client, config as kube_config

from ..config import PipelineConfig
from ..errors import ArtifactEmptyError, ArtifactMissingError, StageFailure
from .toolchain import Runner

logger = logging.getLogger("clustersetup.kubeconfig")

KUBECONFIG_MODE = 0o600

# Returns None when the API server answered, else a description of the failure
Probe = Callable[[Path], Optional[str]]


@dataclass
class KubeconfigResult:
    """Outcome of a retrieval.

    ``success`` is False when the credential was installed but the cluster
    could not be reached through it; ``warning`` then says why.
    """
    path: Path
    source: str
    success: bool = True
    warning: Optional[str] = None

    @property
    def export(self) -> Dict[str, str]:
        return {"KUBECONFIG": str(self.path)}


def check_connectivity(kubeconfig: Path) -> Optional[str]:
    """Issue a read-only version query against the cluster."""
    try:
        api_client = kube_config.new_client_from_config(config_file=str(kubeconfig))
        version = client.VersionApi(api_client).get_code()
        logger.info(f"Cluster API reachable, server version {version.git_version}")
        return None
    except Exception as e:
        logger.debug("Connectivity probe failed", exc_info=True)
        return str(e)


def _open_private(path: Path):
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, KUBECONFIG_MODE)
    return os.fdopen(fd, "wb")


def _install(tmp: Path, dest: Path) -> Path:
    os.chmod(tmp, KUBECONFIG_MODE)
    os.replace(tmp, dest)
    return dest


def _discard(path: Path) -> None:
    if path.exists():
        path.unlink()


class LocalArtifactRetriever:
    """Copy the kubeconfig Kubespray wrote under ``inventory/*/artifacts/``."""

    def __init__(self, search_roots: Sequence[Path], pattern: str):
        self.search_roots = [Path(p) for p in search_roots]
        self.pattern = pattern

    def find(self) -> Optional[Path]:
        for root in self.search_roots:
            if not root.is_dir():
                continue
            matches = sorted(p for p in root.rglob(self.pattern) if p.is_file())
            if matches:
                logger.debug("Artifact candidates under %s: %s", root, matches)
                return matches[0]
        return None

    def retrieve(self, dest: Path) -> KubeconfigResult:
        """Copy the first matching artifact to ``dest``.

        Raises:
            ArtifactMissingError: No file matches the artifact pattern
            ArtifactEmptyError: The matched file is zero-length
        """
        dest = Path(dest)
        _discard(dest)
        roots = ", ".join(str(p) for p in self.search_roots)
        source = self.find()
        if source is None:
            raise ArtifactMissingError(
                f"No kubeconfig artifact matching '{self.pattern}' under {roots}. "
                "Kubespray must be configured with kubeconfig_localhost: true "
                "and the kubespray stage must have completed successfully."
            )
        if source.stat().st_size == 0:
            raise ArtifactEmptyError(
                f"Kubeconfig artifact {source} is empty. "
                "Re-run the kubespray stage and make sure it completes successfully."
            )

        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp = dest.with_name(f".{dest.name}.tmp")
        with open(source, "rb") as src, _open_private(tmp) as out:
            shutil.copyfileobj(src, out)
        _install(tmp, dest)
        logger.info(f"Copied kubeconfig artifact {source} -> {dest}")
        return KubeconfigResult(path=dest, source=str(source))


class RemoteKubeconfigFetcher:
    """Stream the admin kubeconfig from a control-plane host over SSH."""

    def __init__(
        self,
        host: str,
        remote_path: str = "/etc/kubernetes/admin.conf",
        ssh_opts: Optional[List[str]] = None,
        runner: Runner = subprocess.run,
        probe: Probe = check_connectivity,
    ):
        self.host = host
        self.remote_path = remote_path
        self.ssh_opts = list(ssh_opts or [])
        self.runner = runner
        self.probe = probe

    def command(self) -> List[str]:
        return ["ssh", *self.ssh_opts, self.host, f"sudo cat {shlex.quote(self.remote_path)}"]

    def retrieve(self, dest: Path) -> KubeconfigResult:
        """Fetch into ``dest`` and probe the cluster with it.

        Raises:
            StageFailure: ssh exited non-zero
            ArtifactEmptyError: The fetched file has no content
        """
        dest = Path(dest)
        _discard(dest)
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp = dest.with_name(f".{dest.name}.tmp")
        cmd = self.command()

        logger.debug("Fetching kubeconfig: %s", shlex.join(cmd))
        try:
            with _open_private(tmp) as out:
                result = self.runner(cmd, stdout=out, check=False)
        except OSError as e:
            _discard(tmp)
            raise StageFailure("kubeconfig", 127, shlex.join(cmd)) from e

        if result.returncode != 0:
            _discard(tmp)
            raise StageFailure("kubeconfig", result.returncode, shlex.join(cmd))
        if tmp.stat().st_size == 0:
            _discard(tmp)
            raise ArtifactEmptyError(
                f"Fetched kubeconfig is empty ({dest}). Check that {self.remote_path} "
                f"exists on {self.host} and the kubespray stage completed successfully."
            )

        _install(tmp, dest)
        fetched = KubeconfigResult(path=dest, source=f"{self.host}:{self.remote_path}")

        failure = self.probe(dest)
        if failure:
            fetched.success = False
            fetched.warning = (
                f"Cluster connectivity check failed ({failure}); "
                "check reachability / HAProxy / certs."
            )
        return fetched


def get_retriever(
    config: PipelineConfig,
    runner: Runner = subprocess.run,
    probe: Probe = check_connectivity,
):
    """Pick the retrieval strategy named by ``config.kubeconfig_mode``."""
    if config.kubeconfig_mode == "local":
        return LocalArtifactRetriever(config.artifact_search_roots, config.artifact_pattern)
    return RemoteKubeconfigFetcher(
        config.kubeconfig_host,
        remote_path=config.remote_kubeconfig_path,
        ssh_opts=config.ssh_opts,
        runner=runner,
        probe=probe,
    )


def retrieve(
    config: PipelineConfig,
    runner: Runner = subprocess.run,
    probe: Probe = check_connectivity,
) -> KubeconfigResult:
    return get_retriever(config, runner=runner, probe=probe).retrieve(config.kubeconfig_dest)
