import pytest
from click.testing import CliRunner

from jenkins_ha_tools import demo, reset as reset_mod, validate as validate_mod
from jenkins_ha_tools.cli import cli, make_confirm
from jenkins_ha_tools.utils import ConvergenceError, PrerequisiteError
from jenkins_ha_tools.validate import CheckResult, ValidationReport


@pytest.fixture
def invoke(deploy_root, clean_env):
    def run(*args, **kwargs):
        return CliRunner().invoke(cli, ["--root", str(deploy_root), *args], **kwargs)
    return run


def test_help_lists_aliases(invoke):
    result = invoke("--help")

    assert result.exit_code == 0
    assert "docker (compose)" in result.output
    assert "reset (down)" in result.output


def test_names(invoke):
    result = invoke("names")

    assert result.exit_code == 0
    assert "docker-compose_jenkins-net" in result.output
    assert "jenkins-demo-jenkins-ha" in result.output


def test_alias_runs_docker_demo(invoke, monkeypatch):
    calls = []
    monkeypatch.setattr(demo, "run_docker_demo", lambda config: calls.append(config))

    result = invoke("compose")

    assert result.exit_code == 0
    assert len(calls) == 1


def test_demo_error_exits_nonzero(invoke, monkeypatch):
    def missing_docker(config):
        raise PrerequisiteError("docker is not installed. Please install docker and try again.")

    monkeypatch.setattr(demo, "run_docker_demo", missing_docker)

    result = invoke("docker")

    assert result.exit_code == 1
    assert "[ERROR] docker is not installed" in result.output


def test_interrupt_exits_130(invoke, monkeypatch):
    def interrupted(config, confirm):
        raise KeyboardInterrupt()

    monkeypatch.setattr(demo, "run_k8s_demo", interrupted)

    result = invoke("k8s")

    assert result.exit_code == 130


def test_reset_prompts_default_to_no(invoke):
    result = invoke("reset", input="\n\n")

    assert result.exit_code == 0
    assert "Skipping Docker demo reset." in result.output
    assert "Skipping Kubernetes demo reset." in result.output


def test_reset_flags_skip_questions(invoke, monkeypatch):
    seen = {}

    def fake_reset(config, confirm, docker=None, k8s=None, prune=False):
        seen.update(docker=docker, k8s=k8s, prune=prune, answer=confirm("Proceed?"))
        return []

    monkeypatch.setattr(reset_mod, "reset", fake_reset)

    result = invoke("reset", "--docker", "--no-k8s", "--prune", "--yes")

    assert result.exit_code == 0
    assert seen == {"docker": True, "k8s": False, "prune": True, "answer": True}


def test_validate_exit_code_reflects_report(invoke, monkeypatch):
    failing = ValidationReport([CheckResult("Grafana API", False, "down")])
    monkeypatch.setattr(validate_mod, "validate_docker", lambda config: failing)

    assert invoke("validate", "docker").exit_code == 1

    monkeypatch.setattr(validate_mod, "validate_docker", lambda config: ValidationReport())
    assert invoke("validate", "docker").exit_code == 0


def test_make_confirm_assume_yes():
    assert make_confirm(True)("Delete everything?") is True


def test_convergence_error_reported_once(invoke, monkeypatch):
    def rejected(config):
        raise ConvergenceError("compose up failed", output="network declared as external")

    monkeypatch.setattr(demo, "run_docker_demo", rejected)

    result = invoke("docker")

    assert result.exit_code == 1
    assert result.output.count("compose up failed") == 1
