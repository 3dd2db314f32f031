import os
import stat

import pytest

from clustersetup.errors import ArtifactEmptyError, ArtifactMissingError, StageFailure
from clustersetup.modules.kubeconfig import (
    LocalArtifactRetriever,
    RemoteKubeconfigFetcher,
    get_retriever,
    retrieve,
)
from clustersetup.tests.conftest import KUBECONFIG_BODY, FakeRunner, reachable


def mode(path):
    return stat.S_IMODE(os.stat(path).st_mode)


def write_artifact(root, inventory="lab", body=KUBECONFIG_BODY):
    artifact = root / "inventory" / inventory / "artifacts" / "admin.conf"
    artifact.parent.mkdir(parents=True)
    artifact.write_bytes(body)
    return artifact


class TestLocalArtifact:
    def test_copies_with_owner_only_permissions(self, make_config):
        config = make_config(kubeconfig_mode="local")
        write_artifact(config.root / "kubespray-overlay")
        result = retrieve(config)
        assert result.path == config.root / "admin.conf"
        assert result.path.read_bytes() == KUBECONFIG_BODY
        assert mode(result.path) == 0o600
        assert result.export == {"KUBECONFIG": str(config.root / "admin.conf")}
        assert result.warning is None

    def test_first_match_wins(self, tmp_path):
        write_artifact(tmp_path, "b", b"second")
        write_artifact(tmp_path, "a", b"first")
        dest = tmp_path / "out" / "admin.conf"
        LocalArtifactRetriever([tmp_path], "inventory/*/artifacts/admin.conf").retrieve(dest)
        assert dest.read_bytes() == b"first"

    def test_missing_artifact_names_pattern_and_precondition(self, tmp_path):
        dest = tmp_path / "admin.conf"
        dest.write_text("stale")
        with pytest.raises(ArtifactMissingError) as exc:
            LocalArtifactRetriever([tmp_path / "kubespray"], "inventory/*/artifacts/admin.conf").retrieve(dest)
        assert "inventory/*/artifacts/admin.conf" in exc.value.message
        assert "kubeconfig_localhost" in exc.value.message
        assert not dest.exists()

    def test_empty_artifact_is_rejected(self, tmp_path):
        write_artifact(tmp_path, body=b"")
        dest = tmp_path / "admin.conf"
        dest.write_text("stale")
        with pytest.raises(ArtifactEmptyError):
            LocalArtifactRetriever([tmp_path], "inventory/*/artifacts/admin.conf").retrieve(dest)
        assert not dest.exists()


class TestRemoteFetch:
    def test_fetches_over_ssh(self, tmp_path, runner):
        dest = tmp_path / "admin.conf"
        fetcher = RemoteKubeconfigFetcher("master1", ssh_opts=["-J", "bastion"], runner=runner, probe=reachable)
        result = fetcher.retrieve(dest)
        assert runner.calls[0].cmd == ["ssh", "-J", "bastion", "master1", "sudo cat /etc/kubernetes/admin.conf"]
        assert dest.read_bytes() == KUBECONFIG_BODY
        assert mode(dest) == 0o600
        assert result.source == "master1:/etc/kubernetes/admin.conf"
        assert result.success
        assert result.warning is None

    def test_empty_fetch_leaves_no_file(self, tmp_path):
        dest = tmp_path / "admin.conf"
        dest.write_text("stale")
        fetcher = RemoteKubeconfigFetcher("master1", runner=FakeRunner(kubeconfig=b""), probe=reachable)
        with pytest.raises(ArtifactEmptyError):
            fetcher.retrieve(dest)
        assert not dest.exists()
        assert list(tmp_path.iterdir()) == []

    def test_ssh_failure_is_stage_failure(self, tmp_path):
        dest = tmp_path / "admin.conf"
        fetcher = RemoteKubeconfigFetcher("master1", runner=FakeRunner(returncodes={"master1": 255}),
                                          probe=reachable)
        with pytest.raises(StageFailure) as exc:
            fetcher.retrieve(dest)
        assert exc.value.exit_code == 255
        assert not dest.exists()

    def test_connectivity_failure_is_only_a_warning(self, tmp_path, runner):
        dest = tmp_path / "admin.conf"
        fetcher = RemoteKubeconfigFetcher("master1", runner=runner, probe=lambda path: "connection refused")
        result = fetcher.retrieve(dest)
        assert not result.success
        assert dest.exists()
        assert "connection refused" in result.warning
        assert "HAProxy" in result.warning


def test_strategy_follows_config(make_config):
    assert isinstance(get_retriever(make_config(kubeconfig_mode="local")), LocalArtifactRetriever)
    remote = get_retriever(make_config(ssh_opts="-p 2222", kubeconfig_host="cp1"))
    assert isinstance(remote, RemoteKubeconfigFetcher)
    assert remote.command()[:4] == ["ssh", "-p", "2222", "cp1"]
