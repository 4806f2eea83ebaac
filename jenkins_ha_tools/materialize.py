"""
Generate the Prometheus scrape config and the monitoring compose overlay.

Both documents are built as plain data and serialized with PyYAML, so the
same inputs always yield byte-identical files.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List

import yaml

from . import output
from .config import Config
from .naming import DockerNames

SCRAPE_INTERVAL = "15s"
JENKINS_NETWORK_KEY = "jenkins-net"


def prometheus_config(config: Config) -> dict:
    """Scrape config: both Jenkins controllers plus the monitoring stack itself."""
    jenkins_targets = [f"{name}:8080" for name in config.jenkins_containers]
    return {
        "global": {"scrape_interval": SCRAPE_INTERVAL},
        "scrape_configs": [
            {
                "job_name": "jenkins",
                "metrics_path": config.jenkins_metrics_path,
                "static_configs": [{"targets": jenkins_targets}],
            },
            {"job_name": "prometheus", "static_configs": [{"targets": ["localhost:9090"]}]},
            {"job_name": "node-exporter", "static_configs": [{"targets": ["node-exporter:9100"]}]},
            {"job_name": "grafana", "static_configs": [{"targets": ["grafana:3000"]}]},
        ],
    }


def monitoring_compose(config: Config, names: DockerNames) -> dict:
    """
    Compose file for the monitoring stack.

    Prometheus joins the Jenkins network, which is declared external under
    the name compose gave it when the Jenkins stack came up.
    """
    monitoring = config.monitoring_dir
    return {
        "version": "3.7",
        "services": {
            "prometheus": {
                "image": "prom/prometheus:latest",
                "volumes": [
                    f"{config.generated_prometheus_config}:/etc/prometheus/prometheus.yml",
                    f"{monitoring / 'prometheus' / 'alerts'}:/etc/prometheus/alerts",
                ],
                "command": ["--config.file=/etc/prometheus/prometheus.yml"],
                "ports": ["9090:9090"],
                "networks": [JENKINS_NETWORK_KEY, "default"],
            },
            "grafana": {
                "image": "grafana/grafana:latest",
                "volumes": [
                    f"{monitoring / 'grafana' / 'dashboards'}:/var/lib/grafana/dashboards",
                    f"{monitoring / 'grafana' / 'provisioning'}:/etc/grafana/provisioning",
                ],
                "ports": ["3000:3000"],
                "environment": [
                    "GF_SECURITY_ADMIN_USER=${GRAFANA_ADMIN_USER:-admin}",
                    "GF_SECURITY_ADMIN_PASSWORD=${GRAFANA_ADMIN_PASSWORD:-admin}",
                ],
                "networks": ["default"],
                "depends_on": ["prometheus"],
            },
            "alertmanager": {
                "image": "prom/alertmanager:latest",
                "volumes": [
                    f"{monitoring / 'alertmanager' / 'alertmanager.yml'}:/etc/alertmanager/alertmanager.yml",
                ],
                "ports": ["9093:9093"],
                "networks": ["default"],
            },
            "node-exporter": {
                "image": "prom/node-exporter:latest",
                "ports": ["9100:9100"],
                "networks": ["default"],
            },
        },
        "networks": {
            JENKINS_NETWORK_KEY: {"name": names.jenkins_network, "external": True},
            "default": {"driver": "bridge"},
        },
    }


def render(document: dict) -> str:
    return yaml.safe_dump(document, sort_keys=False, default_flow_style=False)


def write_document(path: Path, document: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render(document))
    return path


@dataclass(frozen=True)
class MonitoringArtifacts:
    prometheus_config: Path
    compose_file: Path

    @property
    def paths(self) -> List[Path]:
        return [self.prometheus_config, self.compose_file]


def remove_artifacts(config: Config) -> List[Path]:
    """Delete generated files, returning the ones that existed."""
    removed = []
    for path in (config.generated_compose_file, config.generated_prometheus_config):
        if path.exists():
            path.unlink()
            removed.append(path)
    return removed


@contextmanager
def monitoring_artifacts(config: Config, names: DockerNames) -> Iterator[MonitoringArtifacts]:
    """
    Write the scrape config and compose overlay, and delete them on exit.

    Cleanup runs on every exit path, including KeyboardInterrupt.
    """
    output.info("Preparing generated configurations for monitoring stack...")
    try:
        artifacts = MonitoringArtifacts(
            prometheus_config=write_document(config.generated_prometheus_config, prometheus_config(config)),
            compose_file=write_document(config.generated_compose_file, monitoring_compose(config, names)),
        )
        output.info(f"Created Prometheus config at {artifacts.prometheus_config}")
        output.info(
            f"Created monitoring compose file at {artifacts.compose_file} "
            f"(external network '{names.jenkins_network}')"
        )
        yield artifacts
    finally:
        for path in remove_artifacts(config):
            output.info(f"Removed generated file {path}")
