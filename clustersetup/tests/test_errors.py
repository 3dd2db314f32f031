from clustersetup.errors import (
    EXIT_FAILURE,
    EXIT_MISSING_DEPENDENCY,
    ClusterSetupError,
    ConfigurationError,
    MissingToolError,
    StageFailure,
)


def test_default_exit_code_comes_from_class():
    assert ClusterSetupError("boom").exit_code == EXIT_FAILURE
    assert ConfigurationError("bad").exit_code == EXIT_FAILURE
    assert MissingToolError("ssh").exit_code == EXIT_MISSING_DEPENDENCY


def test_explicit_exit_code_overrides_class_default():
    assert ClusterSetupError("boom", exit_code=3).exit_code == 3


def test_stage_failure_exit_status():
    assert StageFailure("haproxy", 4).exit_code == 4
    assert StageFailure("haproxy", -9).exit_code == 137
