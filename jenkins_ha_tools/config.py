"""Configuration management for Jenkins HA tools."""

import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from dotenv import dotenv_values

from . import output

DEFAULTS: Dict[str, str] = {
    "JENKINS_ADMIN_USER": "admin",
    "JENKINS_ADMIN_PASSWORD": "ChangeMe123!",
    "JENKINS_URL_BASE_DOCKER": "https://localhost",
    "COMPOSE_COMMAND": "docker-compose",
    "COMPOSE_PROJECT_NAME": "",
    "JENKINS_NETWORK": "jenkins-net",
    "JENKINS_NETWORK_NAME": "",
    "MONITORING_PROJECT_NAME": "jenkins-monitoring",
    "JENKINS_CONTAINERS": "jenkins-1,jenkins-2",
    "JENKINS_HOST_PORTS": "8080,8081",
    "JENKINS_LB_CONTAINER": "jenkins-lb",
    "JENKINS_METRICS_PATH": "/prometheus",
    "PROMETHEUS_URL": "http://localhost:9090",
    "GRAFANA_URL": "http://localhost:3000",
    "GRAFANA_ADMIN_USER": "admin",
    "GRAFANA_ADMIN_PASSWORD": "admin",
    "K8S_NAMESPACE": "jenkins-demo",
    "HELM_RELEASE_NAME": "jenkins-demo",
    "HELM_CHART_NAME": "jenkins-ha",
    "HELM_NAME_OVERRIDE": "",
    "HELM_FULLNAME_OVERRIDE": "",
    "JENKINS_ADMIN_USER_K8S": "admin",
    "JENKINS_ADMIN_PASSWORD_K8S": "ChangeMeK8s123!",
    "JENKINS_INGRESS_HOST_K8S": "jenkins-demo.local",
    "K8S_REPLICA_COUNT": "1",
    "K8S_STORAGE_CLASS": "",
    "HELM_TIMEOUT": "10m",
    "PROBE_INTERVAL": "10",
    "PROBE_ATTEMPTS": "30",
    "K8S_PROBE_ATTEMPTS": "60",
    "LOG_TAIL_LINES": "50",
    "HTTP_TIMEOUT": "5",
}


class Config:
    """
    Resolved, read-only deployment configuration.

    Every recognized key is looked up in the process environment first, then
    in the dotenv file, then in ``DEFAULTS``. Values are captured once at
    construction; later changes to ``os.environ`` have no effect.
    """

    def __init__(
        self,
        env_file: Optional[str] = None,
        root: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        """
        Initialize configuration.

        Args:
            env_file: Path to a dotenv file. Defaults to ``<root>/.env``.
            root: Deployment root holding ``docker-compose/`` and ``kubernetes/``.
            environ: Process environment snapshot (defaults to ``os.environ``).
        """
        environ = dict(os.environ if environ is None else environ)
        self.root = Path(root or environ.get("DEPLOY_ROOT") or os.getcwd()).resolve()
        self.env_file = Path(env_file) if env_file else self.root / ".env"
        self.env_file_found = self.env_file.is_file()

        file_values = {}
        if self.env_file_found:
            file_values = {k: v for k, v in dotenv_values(self.env_file).items() if v is not None}

        resolved = {}
        for key, default in DEFAULTS.items():
            # Empty values fall through, matching ${VAR:-default}
            resolved[key] = environ.get(key) or file_values.get(key) or default
        self._values = resolved

        # Package-relative resources
        self.template_dir = Path(__file__).parent / "templates"

    def __getitem__(self, key: str) -> str:
        return self._values[key]

    def _int(self, key: str) -> int:
        return int(self._values[key])

    def _list(self, key: str) -> List[str]:
        return [item.strip() for item in self._values[key].split(",") if item.strip()]

    # Paths

    @property
    def compose_dir(self) -> Path:
        return self.root / "docker-compose"

    @property
    def jenkins_compose_file(self) -> Path:
        return self.compose_dir / "docker-compose.yml"

    @property
    def monitoring_dir(self) -> Path:
        return self.compose_dir / "monitoring"

    @property
    def monitoring_compose_file(self) -> Path:
        return self.monitoring_dir / "docker-compose.yml"

    @property
    def generated_compose_file(self) -> Path:
        """Overlay compose file written for the monitoring stack."""
        return self.monitoring_dir / "docker-compose.monitoring.jenkins-scrape.yml"

    @property
    def generated_prometheus_config(self) -> Path:
        """Scrape config written for the monitoring stack."""
        return self.monitoring_dir / "prometheus" / "prometheus.jenkins-scrape.yml"

    @property
    def jenkins_home_path(self) -> Path:
        return self.compose_dir / "jenkins_home"

    @property
    def certs_path(self) -> Path:
        return self.compose_dir / "certs"

    @property
    def setup_script(self) -> Path:
        return self.root / "setup.sh"

    @property
    def helm_chart_path(self) -> Path:
        return self.root / "kubernetes" / "helm"

    # Docker

    @property
    def jenkins_admin_user(self) -> str:
        """Jenkins admin username."""
        return self._values["JENKINS_ADMIN_USER"]

    @property
    def jenkins_admin_password(self) -> str:
        """Jenkins admin password."""
        return self._values["JENKINS_ADMIN_PASSWORD"]

    @property
    def jenkins_url(self) -> str:
        """Jenkins URL behind the load balancer."""
        return self._values["JENKINS_URL_BASE_DOCKER"].rstrip("/")

    @property
    def compose_command(self) -> List[str]:
        return self._values["COMPOSE_COMMAND"].split()

    @property
    def compose_project_name(self) -> str:
        """Explicit compose project name, or empty when compose derives it."""
        return self._values["COMPOSE_PROJECT_NAME"]

    @property
    def jenkins_network(self) -> str:
        """Network key as declared in the Jenkins compose file."""
        return self._values["JENKINS_NETWORK"]

    @property
    def jenkins_network_override(self) -> str:
        return self._values["JENKINS_NETWORK_NAME"]

    @property
    def monitoring_project_name(self) -> str:
        return self._values["MONITORING_PROJECT_NAME"]

    @property
    def jenkins_containers(self) -> List[str]:
        return self._list("JENKINS_CONTAINERS")

    @property
    def jenkins_host_ports(self) -> List[int]:
        return [int(port) for port in self._list("JENKINS_HOST_PORTS")]

    @property
    def jenkins_lb_container(self) -> str:
        return self._values["JENKINS_LB_CONTAINER"]

    @property
    def jenkins_metrics_path(self) -> str:
        return self._values["JENKINS_METRICS_PATH"]

    @property
    def prometheus_url(self) -> str:
        return self._values["PROMETHEUS_URL"].rstrip("/")

    @property
    def grafana_url(self) -> str:
        return self._values["GRAFANA_URL"].rstrip("/")

    @property
    def grafana_admin_user(self) -> str:
        return self._values["GRAFANA_ADMIN_USER"]

    @property
    def grafana_admin_password(self) -> str:
        return self._values["GRAFANA_ADMIN_PASSWORD"]

    # Kubernetes

    @property
    def namespace(self) -> str:
        return self._values["K8S_NAMESPACE"]

    @property
    def release_name(self) -> str:
        return self._values["HELM_RELEASE_NAME"]

    @property
    def chart_name(self) -> str:
        return self._values["HELM_CHART_NAME"]

    @property
    def name_override(self) -> str:
        return self._values["HELM_NAME_OVERRIDE"]

    @property
    def fullname_override(self) -> str:
        return self._values["HELM_FULLNAME_OVERRIDE"]

    @property
    def k8s_admin_user(self) -> str:
        return self._values["JENKINS_ADMIN_USER_K8S"]

    @property
    def k8s_admin_password(self) -> str:
        return self._values["JENKINS_ADMIN_PASSWORD_K8S"]

    @property
    def ingress_host(self) -> str:
        return self._values["JENKINS_INGRESS_HOST_K8S"]

    @property
    def replica_count(self) -> int:
        return self._int("K8S_REPLICA_COUNT")

    @property
    def storage_class(self) -> str:
        return self._values["K8S_STORAGE_CLASS"]

    @property
    def helm_timeout(self) -> str:
        return self._values["HELM_TIMEOUT"]

    # Probing

    @property
    def probe_interval(self) -> float:
        return float(self._values["PROBE_INTERVAL"])

    @property
    def probe_attempts(self) -> int:
        return self._int("PROBE_ATTEMPTS")

    @property
    def k8s_probe_attempts(self) -> int:
        return self._int("K8S_PROBE_ATTEMPTS")

    @property
    def log_tail_lines(self) -> int:
        return self._int("LOG_TAIL_LINES")

    @property
    def http_timeout(self) -> float:
        return float(self._values["HTTP_TIMEOUT"])

    def compose_env(self) -> Dict[str, str]:
        """Environment handed to compose so its files can interpolate our values."""
        env = dict(os.environ)
        env.update(
            JENKINS_ADMIN_USER=self.jenkins_admin_user,
            JENKINS_ADMIN_PASSWORD=self.jenkins_admin_password,
            JENKINS_HOME_PATH=str(self.jenkins_home_path),
            GRAFANA_ADMIN_USER=self.grafana_admin_user,
            GRAFANA_ADMIN_PASSWORD=self.grafana_admin_password,
        )
        return env

    def get_template_path(self, template_name: str) -> Path:
        """
        Get path to a template file.

        Args:
            template_name: Template name relative to templates directory
                          (e.g., "jenkins/pipeline-job.xml")

        Returns:
            Path to template file

        Raises:
            FileNotFoundError: If template doesn't exist
        """
        template_path = self.template_dir / template_name
        if not template_path.exists():
            raise FileNotFoundError(f"Template not found: {template_path}")
        return template_path

    def announce(self, platform: str = "docker") -> None:
        """Report where configuration came from without leaking secrets."""
        output.info("Loading environment configuration...")
        if self.env_file_found:
            output.info(f"Found {self.env_file}. Using it for settings not set in the environment.")
        elif platform == "docker":
            output.warn(f"No .env file found at {self.env_file}. Using default credentials and settings.")
            output.warn(f"Jenkins Admin User: {self.jenkins_admin_user}")
            output.warn(f"Jenkins Admin Password: {self.jenkins_admin_password} (Consider changing this!)")
        else:
            output.warn(f"No .env file found at {self.env_file}. Using default K8s settings.")
        if platform == "k8s":
            output.info(f"Using Namespace: {self.namespace}, Helm Release: {self.release_name}")
            output.warn(f"Jenkins Admin User: {self.k8s_admin_user}")


# Global config instance
_config: Optional[Config] = None


def get_config(env_file: Optional[str] = None, root: Optional[str] = None) -> Config:
    """
    Get or create the global configuration instance.

    Args:
        env_file: Optional path to .env file
        root: Optional deployment root

    Returns:
        Config instance
    """
    global _config
    if _config is None:
        _config = Config(env_file, root)
    return _config


def reset_config() -> None:
    """Reset the global configuration instance."""
    global _config
    _config = None
