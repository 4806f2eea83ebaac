"""
Derive the names Docker Compose and Helm assign to the resources they create.

These functions reproduce orchestrator conventions rather than asking the
orchestrator. If a convention changes between versions, the computed name
silently stops matching the real one and the failure shows up later as a
generic "network not found" or "not found" error from the orchestrator. The
pinned behavior is:

* Docker Compose v2: project name is ``COMPOSE_PROJECT_NAME`` or the base
  name of the directory containing the first compose file, lowercased with
  every character outside ``[a-z0-9_-]`` dropped and leading ``_``/``-``
  stripped. Compose v1 applies the same filter but keeps leading ``_``/``-``;
  such names are rejected by v2, so they are not reproduced here. Networks
  are named ``{project}_{network}``.
* Helm (``helm create`` scaffold ``fullname`` helper): ``fullnameOverride``
  if set; otherwise the release name if it already contains the chart name,
  else ``{release}-{chart}``; truncated to 63 characters, then one trailing
  ``-`` removed (``trimSuffix "-"``).
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List

from . import output
from .config import Config

COMPOSE_NETWORK_TEMPLATE = "{project}_{network}"
COMPOSE_PROJECT_ALLOWED = re.compile(r"[a-z0-9_-]")
K8S_NAME_MAX_LENGTH = 63
INSTANCE_LABEL = "app.kubernetes.io/instance"
NAME_LABEL = "app.kubernetes.io/name"


def normalize_compose_project_name(name: str) -> str:
    """Apply Compose's project-name normalization."""
    return "".join(COMPOSE_PROJECT_ALLOWED.findall(name.lower())).lstrip("_-")


def compose_project_name(compose_file: Path, explicit: str = "") -> str:
    """
    Return the project name compose will use for ``compose_file``.

    Logs a warning when normalization changes the name, since that is the
    usual reason cross-stack references stop resolving.
    """
    raw = explicit or Path(compose_file).resolve().parent.name
    normalized = normalize_compose_project_name(raw)
    if normalized != raw:
        output.warn(f"Compose project name '{raw}' is normalized to '{normalized}'.")
    if not normalized:
        raise ValueError(f"Compose project name '{raw}' normalizes to an empty string")
    return normalized


def compose_network_name(project: str, network: str) -> str:
    return COMPOSE_NETWORK_TEMPLATE.format(project=project, network=network)


def _trunc_trim(value: str) -> str:
    """Helm's ``trunc 63 | trimSuffix "-"``: at most one dash is removed."""
    value = value[:K8S_NAME_MAX_LENGTH]
    return value[:-1] if value.endswith("-") else value


def helm_fullname(release: str, chart: str, name_override: str = "", fullname_override: str = "") -> str:
    """Name the chart gives its StatefulSet, Service, Ingress and ServiceMonitor."""
    if fullname_override:
        return _trunc_trim(fullname_override)
    name = name_override or chart
    if name in release:
        return _trunc_trim(release)
    return _trunc_trim(f"{release}-{name}")


def helm_chart_label(chart: str, name_override: str = "") -> str:
    """Value of ``app.kubernetes.io/name`` on chart objects."""
    return _trunc_trim(name_override or chart)


@dataclass(frozen=True)
class DockerNames:
    """Names derived for the Docker Compose deployment."""
    jenkins_project: str
    jenkins_network: str
    monitoring_project: str


@dataclass(frozen=True)
class KubeNames:
    """Names derived for the Helm deployment."""
    namespace: str
    release: str
    fullname: str
    chart_label: str

    @property
    def instance_selector(self) -> str:
        return f"{INSTANCE_LABEL}={self.release}"

    @property
    def pod_selector(self) -> str:
        return f"{INSTANCE_LABEL}={self.release},{NAME_LABEL}={self.chart_label}"

    def object_name_candidates(self) -> List[str]:
        """
        Names to try for chart objects, best guess first.

        The release name alone is kept as a fallback because older copies of
        the chart named objects after the release. ``helm get manifest`` is
        the real source of truth; see ``kube.manifest_names``.
        """
        candidates = [self.fullname]
        for alternative in (self.release, f"{self.release}-{self.chart_label}"):
            if alternative not in candidates:
                candidates.append(alternative)
        return candidates


def docker_names(config: Config) -> DockerNames:
    """Derive every Docker-side name from configuration."""
    project = compose_project_name(config.jenkins_compose_file, config.compose_project_name)
    network = config.jenkins_network_override or compose_network_name(project, config.jenkins_network)
    return DockerNames(
        jenkins_project=project,
        jenkins_network=network,
        monitoring_project=normalize_compose_project_name(config.monitoring_project_name),
    )


def kube_names(config: Config) -> KubeNames:
    """Derive every Kubernetes-side name from configuration."""
    return KubeNames(
        namespace=config.namespace,
        release=config.release_name,
        fullname=helm_fullname(
            config.release_name,
            config.chart_name,
            config.name_override,
            config.fullname_override,
        ),
        chart_label=helm_chart_label(config.chart_name, config.name_override),
    )
