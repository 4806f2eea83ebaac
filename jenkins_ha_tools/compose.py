"""Docker and Docker Compose operations."""

from pathlib import Path
from typing import List, Optional

from . import output
from .config import Config
from .probe import HealthStatus
from .utils import ConvergenceError, DockerError, PrerequisiteError, require_tool, run_command, succeeded

PROJECT_LABEL = "com.docker.compose.project"
INSPECT_FORMAT = "{{.State.Status}}|{{if .State.Health}}{{.State.Health.Status}}{{end}}"


def check_prerequisites(config: Config) -> None:
    """
    Ensure docker and the compose command are installed and the daemon answers.

    Raises:
        PrerequisiteError: If either is missing
        DockerError: If the Docker daemon is not reachable
    """
    output.info("Checking prerequisites...")
    output.info(f"Docker found: {require_tool('docker', ['--version'])}")
    if not succeeded(["docker", "info"]):
        raise DockerError("Cannot connect to the Docker daemon. Is it running?")
    compose = config.compose_command
    if compose[0] == "docker":
        result = run_command([*compose, "version"])
        if result.returncode != 0:
            raise PrerequisiteError(f"'{' '.join(compose)}' is not available. Please install Docker Compose.")
        banner = result.stdout.strip() or " ".join(compose)
    else:
        banner = require_tool(compose[0], ["--version"])
    output.info(f"Docker Compose found: {banner}")
    output.info("Prerequisites met.")


def compose_cmd(config: Config, project: Optional[str], compose_file: Path) -> List[str]:
    cmd = list(config.compose_command)
    if project:
        cmd.extend(["-p", project])
    cmd.extend(["-f", str(compose_file)])
    return cmd


def up(config: Config, project: Optional[str], compose_file: Path) -> None:
    """
    Converge a compose project (``up -d --remove-orphans``).

    Raises:
        ConvergenceError: If compose exits non-zero; carries its output
    """
    cmd = [*compose_cmd(config, project, compose_file), "up", "-d", "--remove-orphans"]
    result = run_command(cmd, env=config.compose_env())
    if result.returncode != 0:
        raise ConvergenceError(
            f"'{' '.join(cmd)}' failed with exit code {result.returncode}",
            returncode=result.returncode,
            output=(result.stdout or "") + (result.stderr or ""),
        )


def down(config: Config, project: Optional[str], compose_file: Path) -> bool:
    """Tear a compose project down with its volumes. Returns True on exit 0."""
    cmd = [*compose_cmd(config, project, compose_file), "down", "-v", "--remove-orphans"]
    return succeeded(cmd, env=config.compose_env())


def project_resources(project: str) -> List[str]:
    """IDs of containers, networks and volumes labeled with a compose project."""
    label = f"label={PROJECT_LABEL}={project}"
    found: List[str] = []
    for listing in (
        ["docker", "ps", "-aq", "--filter", label],
        ["docker", "network", "ls", "-q", "--filter", label],
        ["docker", "volume", "ls", "-q", "--filter", label],
    ):
        result = run_command(listing)
        if result.returncode == 0:
            found.extend(line for line in result.stdout.split() if line)
    return found


def network_exists(name: str) -> bool:
    return succeeded(["docker", "network", "inspect", name])


def container_health(container: str) -> HealthStatus:
    """
    Map ``docker inspect`` state onto a HealthStatus.

    Containers without a healthcheck report RUNNING rather than HEALTHY,
    leaving readiness to the HTTP probe.
    """
    result = run_command(["docker", "inspect", f"--format={INSPECT_FORMAT}", container])
    if result.returncode != 0:
        return HealthStatus.MISSING
    status, _, health = result.stdout.strip().partition("|")
    if status in ("exited", "dead"):
        return HealthStatus.EXITED
    if status != "running":
        return HealthStatus.STARTING
    if health == "healthy":
        return HealthStatus.HEALTHY
    if health in ("starting", "unhealthy"):
        return HealthStatus.STARTING
    return HealthStatus.RUNNING


def service_containers(config: Config, project: Optional[str], compose_file: Path, service: str) -> List[str]:
    result = run_command([*compose_cmd(config, project, compose_file), "ps", "-q", service], env=config.compose_env())
    if result.returncode != 0:
        return []
    return [line for line in result.stdout.split() if line]


def service_health(config: Config, project: Optional[str], compose_file: Path, service: str) -> HealthStatus:
    """Worst health across every container of a compose service."""
    containers = service_containers(config, project, compose_file, service)
    if not containers:
        return HealthStatus.MISSING
    states = [container_health(container) for container in containers]
    for status in (HealthStatus.EXITED, HealthStatus.MISSING, HealthStatus.STARTING, HealthStatus.RUNNING):
        if status in states:
            return status
    return HealthStatus.HEALTHY


def container_logs(container: str, tail: int) -> str:
    result = run_command(["docker", "logs", "--tail", str(tail), container])
    return (result.stdout or "") + (result.stderr or "")


def service_logs(config: Config, project: Optional[str], compose_file: Path, service: str, tail: int) -> str:
    cmd = [*compose_cmd(config, project, compose_file), "logs", "--tail", str(tail), service]
    result = run_command(cmd, env=config.compose_env())
    return (result.stdout or "") + (result.stderr or "")


def system_prune() -> bool:
    return succeeded(["docker", "system", "prune", "-af", "--volumes"])
