import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import pytest

from clustersetup.config import ENV_OVERRIDES, PipelineConfig

KUBECONFIG_BODY = b"apiVersion: v1\nkind: Config\nclusters: []\n"


@dataclass
class Call:
    cmd: List[str]
    cwd: str
    env: Optional[Dict[str, str]]


class FakeRunner:
    """Stands in for subprocess.run and records every invocation."""

    def __init__(self, returncodes=None, kubeconfig=KUBECONFIG_BODY, raises=None):
        self.calls: List[Call] = []
        self.returncodes = returncodes or {}
        self.kubeconfig = kubeconfig
        self.raises = raises

    def __call__(self, cmd, env=None, stdout=None, check=False, **kwargs):
        cmd = [str(c) for c in cmd]
        self.calls.append(Call(cmd, os.getcwd(), dict(env) if env is not None else None))
        if self.raises:
            raise self.raises
        if cmd[1:3] == ["-m", "venv"]:
            Path(cmd[3]).mkdir(parents=True)
        if cmd[0] == "ssh" and hasattr(stdout, "write"):
            stdout.write(self.kubeconfig)

        returncode = 0
        for marker, code in self.returncodes.items():
            if marker in cmd:
                returncode = code
        return subprocess.CompletedProcess(cmd, returncode)

    def playbooks(self) -> List[str]:
        """Playbooks of stage invocations, in call order."""
        return [c.cmd[3] for c in self.calls if c.cmd[0] == "ansible-playbook" and "-b" in c.cmd]

    def find(self, marker: str) -> List[Call]:
        return [c for c in self.calls if marker in c.cmd]


def found(tool):
    return f"/usr/bin/{tool}"


def reachable(path):
    return None


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("ANSIBLE_SSH_CONTROL_PATH_DIR", str(tmp_path / "ansible-cp"))


@pytest.fixture
def repo(tmp_path):
    root = tmp_path / "repo"
    (root / "lab-setup").mkdir(parents=True)
    (root / "kubespray").mkdir()
    (root / "kubespray" / "requirements.txt").write_text("ansible==9.13.0\n")
    return root


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def make_config(repo, tmp_path):
    def factory(**overrides):
        overrides.setdefault("control_path_dir", tmp_path / "ansible-cp")
        return PipelineConfig.load(root=repo, environ={}, **overrides)
    return factory


@pytest.fixture
def config(make_config):
    return make_config()
