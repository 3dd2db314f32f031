import os

import pytest

from clustersetup.errors import MissingPathError, ProvisionError
from clustersetup.modules.toolchain import Toolchain
from clustersetup.tests.conftest import FakeRunner


def make_toolchain(config, runner):
    return Toolchain(config.toolchain_dir, config.requirements_file, runner=runner)


def test_creates_environment_on_first_use(config, runner):
    toolchain = make_toolchain(config, runner)
    with toolchain.activated({"PATH": "/usr/bin"}) as env:
        assert env["VIRTUAL_ENV"] == str(config.toolchain_dir)
        assert env["PATH"].split(os.pathsep)[0] == str(config.toolchain_dir / "bin")

    assert runner.calls[0].cmd == ["python3", "-m", "venv", str(config.toolchain_dir)]
    assert runner.calls[1].cmd[-4:] == ["pip", "install", "--upgrade", "pip"]
    assert runner.calls[2].cmd[-3:] == ["install", "-r", str(config.requirements_file)]


def test_existing_environment_is_reused_but_resynced(config, runner):
    toolchain = make_toolchain(config, runner)
    with toolchain.activated():
        pass
    marker = config.toolchain_dir / "marker"
    marker.write_text("keep")
    mtime = config.toolchain_dir.stat().st_mtime_ns

    second = FakeRunner()
    with make_toolchain(config, second).activated():
        pass

    assert marker.read_text() == "keep"
    assert config.toolchain_dir.stat().st_mtime_ns == mtime
    assert not second.find("venv")
    assert len(second.find("pip")) == 2


def test_install_failure_aborts(config):
    runner = FakeRunner(returncodes={"-r": 3})
    entered = []
    with pytest.raises(ProvisionError) as exc:
        with make_toolchain(config, runner).activated():
            entered.append(True)
    assert exc.value.step == "install requirements"
    assert exc.value.exit_code == 3
    assert not entered


def test_create_failure_aborts(config):
    runner = FakeRunner(returncodes={"venv": 1})
    with pytest.raises(ProvisionError) as exc:
        make_toolchain(config, runner).create()
    assert exc.value.step == "create"


def test_missing_requirements_manifest(config, runner):
    config.requirements_file.unlink()
    with pytest.raises(MissingPathError):
        with make_toolchain(config, runner).activated():
            pass


def test_activation_never_leaks_into_process_env(config, runner):
    before = dict(os.environ)
    with pytest.raises(RuntimeError):
        with make_toolchain(config, runner).activated() as env:
            env["EXTRA"] = "1"
            raise RuntimeError("stage failed")
    assert dict(os.environ) == before
