import json

import pytest

from jenkins_ha_tools.config import Config
from jenkins_ha_tools.reset import Outcome, reset, reset_docker, reset_k8s


def yes(question):
    return True


def no(question):
    return False


@pytest.fixture
def docker_state(runner):
    """Fake docker daemon: a compose project has resources until it is brought down."""
    running = {"docker-compose", "jenkins-monitoring"}

    def listing(command):
        project = command[-1].rsplit("=", 1)[-1]
        return 0, "c0ffee\n" if project in running else ""

    def compose(command):
        if "down" in command:
            running.discard(command[command.index("-p") + 1])
        return 0, ""

    runner.on("docker", "ps", handler=listing)
    runner.on("docker", "network", "ls", handler=listing)
    runner.on("docker", "volume", "ls", handler=listing)
    runner.on("docker-compose", handler=compose)
    return running


class TestDockerReset:
    def test_removes_everything_then_has_nothing_to_do(self, config, runner, docker_state):
        config.jenkins_home_path.mkdir()
        config.certs_path.mkdir()
        config.generated_prometheus_config.write_text("leftover")

        first = reset_docker(config, yes)

        assert first.failed is False
        assert not first.nothing_to_do
        outcomes = {step.name: step.outcome for step in first.steps}
        assert outcomes["Jenkins services"] == Outcome.REMOVED
        assert outcomes["Monitoring services"] == Outcome.REMOVED
        assert outcomes["Generated files"] == Outcome.REMOVED
        assert outcomes["Jenkins home directory"] == Outcome.REMOVED
        assert not config.jenkins_home_path.exists()
        assert not config.certs_path.exists()
        assert not config.generated_compose_file.exists()
        downs = len(runner.ran("down"))

        second = reset_docker(config, yes)

        assert second.nothing_to_do
        assert not second.failed
        assert len(runner.ran("down")) == downs

    def test_declined_directories_are_kept(self, config, runner, docker_state):
        config.jenkins_home_path.mkdir()

        report = reset_docker(config, no)

        assert config.jenkins_home_path.exists()
        skipped = [step for step in report.steps if step.name == "Jenkins home directory"]
        assert skipped[0].outcome == Outcome.SKIPPED

    def test_failed_down_is_reported_and_reset_continues(self, config, runner, docker_state):
        runner.on("docker-compose", returncode=1)
        config.jenkins_home_path.mkdir()

        report = reset_docker(config, yes)

        assert report.failed
        assert not config.jenkins_home_path.exists()

    def test_without_docker_is_skipped_and_repeatable(self, config, runner, monkeypatch):
        monkeypatch.setattr("jenkins_ha_tools.reset.shutil.which", lambda name: None if name == "docker" else name)
        config.jenkins_home_path.mkdir()

        first = reset_docker(config, yes, prune=True)
        second = reset_docker(config, yes, prune=True)

        assert not first.failed
        assert not config.jenkins_home_path.exists()
        assert second.nothing_to_do
        assert [(s.name, s.outcome) for s in second.steps if s.name.startswith("Docker")] == [
            ("Docker services", Outcome.SKIPPED),
            ("Docker system prune", Outcome.SKIPPED),
        ]
        assert runner.calls == []

    def test_empty_root_stays_empty(self, tmp_path, runner, docker_state):
        config = Config(root=str(tmp_path), environ={})

        report = reset_docker(config, yes)

        assert list(tmp_path.iterdir()) == []
        assert not report.failed
        outcomes = {step.name: step.outcome for step in report.steps}
        assert outcomes["Monitoring services"] == Outcome.SKIPPED

    def test_stopped_monitoring_overlay_is_not_written(self, config, runner, docker_state):
        docker_state.clear()

        report = reset_docker(config, yes)

        assert report.nothing_to_do
        assert list((config.monitoring_dir / "prometheus").iterdir()) == []
        assert not config.generated_compose_file.exists()
        assert runner.ran("down") == []

    def test_prune_only_when_asked(self, config, runner, docker_state):
        runner.on("docker", "system", "prune")

        reset_docker(config, yes)
        assert runner.ran("prune") == []

        report = reset_docker(config, yes, prune=True)
        assert report.steps[-1].name == "Docker system prune"
        assert len(runner.ran("prune")) == 1


class TestKubernetesReset:
    def test_skipped_without_helm(self, config, runner, monkeypatch):
        monkeypatch.setattr("jenkins_ha_tools.reset.shutil.which", lambda name: None if name == "helm" else name)

        report = reset_k8s(config, yes)

        assert [step.outcome for step in report.steps] == [Outcome.SKIPPED]
        assert report.nothing_to_do

    def test_nothing_installed(self, config, runner):
        runner.on("kubectl", "cluster-info")
        runner.on("kubectl", "get", "pvc", stdout=json.dumps({"items": []}))

        report = reset_k8s(config, yes)

        assert report.nothing_to_do
        assert runner.ran("uninstall") == []

    def test_removes_release_pvcs_and_namespace(self, config, runner):
        runner.on("kubectl", "cluster-info")
        runner.on("helm", "status")
        runner.on("helm", "uninstall")
        runner.on("kubectl", "get", "pvc", stdout=json.dumps({"items": [
            {"metadata": {"name": "jenkins-home-jenkins-demo-jenkins-ha-0"}},
        ]}))
        runner.on("kubectl", "delete", "pvc")
        runner.on("kubectl", "get", "namespace")
        runner.on("kubectl", "delete", "namespace")

        report = reset_k8s(config, yes)

        assert [step.outcome for step in report.steps] == [Outcome.REMOVED] * 3
        assert runner.ran("delete", "pvc", "jenkins-home-jenkins-demo-jenkins-ha-0")

    def test_non_demo_namespace_is_never_deleted(self, make_config, runner):
        config = make_config(K8S_NAMESPACE="default")
        runner.on("kubectl", "cluster-info")
        runner.on("kubectl", "get", "pvc", stdout=json.dumps({"items": []}))
        runner.on("kubectl", "get", "namespace")

        report = reset_k8s(config, yes)

        assert report.steps[-1].outcome == Outcome.SKIPPED
        assert runner.ran("delete", "namespace") == []


def test_reset_asks_per_platform(config, runner, capsys):
    assert reset(config, no) == []
    out = capsys.readouterr().out
    assert "Skipping Docker demo reset." in out
    assert "Skipping Kubernetes demo reset." in out
