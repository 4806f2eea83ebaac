"""
Tear down demo deployments.

Compute goes first, then (after confirmation) storage and generated
secrets, then (after confirmation) the namespace. A resource that is already
gone counts as success, so running a reset twice is safe. Failures are
reported and the remaining steps still run.
"""

import shutil
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from . import compose, kube, output
from .config import Config
from .materialize import monitoring_artifacts, remove_artifacts
from .naming import DockerNames, compose_project_name, docker_names, kube_names
from .utils import DemoError

Confirm = Callable[[str], bool]


class Outcome(str, Enum):
    REMOVED = "REMOVED"
    ABSENT = "ABSENT"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


@dataclass
class StepResult:
    name: str
    outcome: Outcome
    detail: str = ""


@dataclass
class ResetReport:
    steps: List[StepResult] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return any(step.outcome == Outcome.FAILED for step in self.steps)

    @property
    def nothing_to_do(self) -> bool:
        return all(step.outcome in (Outcome.ABSENT, Outcome.SKIPPED) for step in self.steps)

    def record(self, name: str, outcome: Outcome, detail: str = "") -> StepResult:
        step = StepResult(name, outcome, detail)
        self.steps.append(step)
        message = f"{name}: {detail}" if detail else name
        if outcome == Outcome.FAILED:
            output.warn(f"{message} (failed, continuing)")
        elif outcome == Outcome.ABSENT:
            output.info(f"{message} (nothing to do)")
        else:
            output.info(message)
        return step


def _remove_directory(report: ResetReport, confirm: Confirm, label: str, path: Path) -> None:
    if not path.exists():
        report.record(label, Outcome.ABSENT, f"{path} not found")
        return
    if not confirm(f"Delete {label} '{path}'?"):
        report.record(label, Outcome.SKIPPED, "kept")
        return
    try:
        shutil.rmtree(path)
    except OSError as e:
        report.record(label, Outcome.FAILED, f"{e}. Manual deletion or sudo might be required")
        return
    report.record(label, Outcome.REMOVED, f"deleted {path}")


def _compose_down(report: ResetReport, config: Config, label: str, project: str, compose_file: Path) -> None:
    if not compose.project_resources(project):
        report.record(label, Outcome.ABSENT, f"compose project '{project}' has no resources")
        return
    if compose.down(config, project, compose_file):
        report.record(label, Outcome.REMOVED, f"compose project '{project}' is down")
    else:
        report.record(label, Outcome.FAILED, f"'down' failed for compose project '{project}'")


def _reset_docker_services(report: ResetReport, config: Config, names: DockerNames) -> None:
    try:
        if config.jenkins_compose_file.exists():
            _compose_down(report, config, "Jenkins services", names.jenkins_project, config.jenkins_compose_file)
        else:
            report.record("Jenkins services", Outcome.SKIPPED, f"{config.jenkins_compose_file} not found")

        if not config.monitoring_dir.is_dir():
            report.record("Monitoring services", Outcome.SKIPPED, f"{config.monitoring_dir} not found")
        elif not compose.project_resources(names.monitoring_project):
            report.record(
                "Monitoring services", Outcome.ABSENT,
                f"compose project '{names.monitoring_project}' has no resources",
            )
        else:
            # Regenerate the overlay so 'down' sees the same project definition as 'up'
            with monitoring_artifacts(config, names) as artifacts:
                _compose_down(report, config, "Monitoring services", names.monitoring_project, artifacts.compose_file)

        if config.monitoring_compose_file.exists():
            standalone = compose_project_name(config.monitoring_compose_file)
            if standalone != names.monitoring_project:
                _compose_down(
                    report, config, "Standalone monitoring services", standalone, config.monitoring_compose_file
                )
    except DemoError as e:
        report.record("Docker services", Outcome.FAILED, str(e))


def reset_docker(config: Config, confirm: Confirm, prune: bool = False) -> ResetReport:
    """Reset the Docker Compose demo."""
    output.info("--- Starting Docker Demo Reset ---")
    report = ResetReport()
    names = docker_names(config)
    leftovers = [
        path for path in (config.generated_compose_file, config.generated_prometheus_config) if path.exists()
    ]

    missing = [tool for tool in ("docker", config.compose_command[0]) if shutil.which(tool) is None]
    if missing:
        report.record("Docker services", Outcome.SKIPPED, f"{missing[0]} not found")
    else:
        _reset_docker_services(report, config, names)

    remove_artifacts(config)
    if leftovers:
        report.record("Generated files", Outcome.REMOVED, ", ".join(str(p) for p in leftovers))
    else:
        report.record("Generated files", Outcome.ABSENT)

    _remove_directory(report, confirm, "Jenkins home directory", config.jenkins_home_path)
    _remove_directory(report, confirm, "certs directory (self-signed certificates)", config.certs_path)

    if prune and missing:
        report.record("Docker system prune", Outcome.SKIPPED, f"{missing[0]} not found")
    elif prune:
        if confirm("Run 'docker system prune -af --volumes'? CAUTION: This removes ALL unused Docker data."):
            if compose.system_prune():
                report.record("Docker system prune", Outcome.REMOVED, "complete")
            else:
                report.record("Docker system prune", Outcome.FAILED)
        else:
            report.record("Docker system prune", Outcome.SKIPPED)

    output.info("--- Docker Demo Reset Complete ---")
    return report


def reset_k8s(config: Config, confirm: Confirm) -> ResetReport:
    """Reset the Kubernetes demo."""
    output.info("--- Starting Kubernetes Demo Reset ---")
    report = ResetReport()
    names = kube_names(config)

    for tool in ("kubectl", "helm"):
        if shutil.which(tool) is None:
            report.record("Kubernetes reset", Outcome.SKIPPED, f"{tool} not found")
            return report
    if not kube.cluster_reachable():
        report.record("Kubernetes reset", Outcome.SKIPPED, "cannot connect to Kubernetes cluster")
        return report

    output.info(f"Targeting Helm release '{names.release}' in namespace '{names.namespace}' for cleanup.")

    if not kube.release_exists(names):
        report.record("Helm release", Outcome.ABSENT, f"'{names.release}' not installed")
    elif kube.helm_uninstall(names):
        report.record("Helm release", Outcome.REMOVED, f"'{names.release}' uninstalled")
    else:
        report.record("Helm release", Outcome.FAILED, f"could not uninstall '{names.release}'")

    pvcs = kube.pvc_names(names)
    if not pvcs:
        report.record("PVCs", Outcome.ABSENT, f"none labeled {names.instance_selector}")
    elif not confirm(f"Delete PVCs ({' '.join(pvcs)}) in namespace '{names.namespace}'?"):
        report.record("PVCs", Outcome.SKIPPED, "kept")
    elif kube.delete_pvcs(names.namespace, pvcs):
        report.record("PVCs", Outcome.REMOVED, " ".join(pvcs))
    else:
        report.record("PVCs", Outcome.FAILED, "they might be in use or have finalizers")

    if not kube.is_demo_namespace(names.namespace):
        report.record(
            "Namespace", Outcome.SKIPPED,
            f"'{names.namespace}' does not look like a demo-specific namespace",
        )
    elif not kube.namespace_exists(names.namespace):
        report.record("Namespace", Outcome.ABSENT, f"'{names.namespace}' not found")
    elif not confirm(f"Delete namespace '{names.namespace}'?"):
        report.record("Namespace", Outcome.SKIPPED, "kept")
    elif kube.delete_namespace(names.namespace):
        report.record("Namespace", Outcome.REMOVED, f"'{names.namespace}' deleted")
    else:
        report.record("Namespace", Outcome.FAILED, "it might be stuck in Terminating state")

    output.info("--- Kubernetes Demo Reset Complete ---")
    return report


def reset(
    config: Config,
    confirm: Confirm,
    docker: Optional[bool] = None,
    k8s: Optional[bool] = None,
    prune: bool = False,
) -> List[ResetReport]:
    """
    Reset either or both demos.

    ``docker``/``k8s`` of None means ask; True/False skips the question.
    """
    output.info("========= Starting Demo Reset =========")
    reports = []

    if docker is None:
        docker = confirm("Do you want to reset the Docker demo environment?")
    if docker:
        reports.append(reset_docker(config, confirm, prune=prune))
    else:
        output.info("Skipping Docker demo reset.")

    if k8s is None:
        k8s = confirm("Do you want to reset the Kubernetes demo environment?")
    if k8s:
        reports.append(reset_k8s(config, confirm))
    else:
        output.info("Skipping Kubernetes demo reset.")

    if reports and all(report.nothing_to_do for report in reports):
        output.info("Nothing to do: no demo resources were found.")
    output.info("========= Demo Reset Finished =========")
    return reports
