"""
Post-deployment validation.

Every check runs regardless of earlier failures and contributes one PASS or
FAIL line to the report. Validation never aborts a run.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional

import requests

from . import kube, output
from .config import Config
from .naming import KubeNames
from .utils import DemoError, http_get_json, http_ok, new_session

JENKINS_SCRAPE_JOB = "jenkins"


@dataclass
class CheckResult:
    name: str
    passed: bool
    detail: str = ""


@dataclass
class ValidationReport:
    checks: List[CheckResult] = field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return all(check.passed for check in self.checks)

    def result(self, name: str) -> Optional[CheckResult]:
        for check in self.checks:
            if check.name == name:
                return check
        return None

    def run(self, name: str, check: Callable[[], CheckResult]) -> CheckResult:
        """Run one check, recording any error as a failure."""
        try:
            result = check()
        except (DemoError, requests.exceptions.RequestException) as e:
            result = CheckResult(name, False, str(e))
        result.name = name
        self.checks.append(result)
        line = f"{name}: {result.detail}" if result.detail else name
        if result.passed:
            output.passed(line)
        else:
            output.failed(line)
        return result

    def print_summary(self) -> None:
        total = len(self.checks)
        passed = sum(1 for check in self.checks if check.passed)
        output.info("-------------------------------------------")
        if self.all_passed:
            output.info(f"Validation successful: {passed}/{total} checks passed.")
        else:
            output.error(f"Some validation checks failed ({total - passed}/{total}). Please review the logs.")


def check_http(session: requests.Session, url: str, timeout: float = 5) -> CheckResult:
    if http_ok(session, url, timeout=timeout):
        return CheckResult("", True, f"{url} is accessible")
    return CheckResult("", False, f"{url} is NOT accessible")


def check_jenkins_targets(session: requests.Session, prometheus_url: str, job: str = JENKINS_SCRAPE_JOB) -> CheckResult:
    """Prometheus has at least one healthy target for the Jenkins scrape job."""
    status, body = http_get_json(session, f"{prometheus_url}/api/v1/targets", params={"state": "active"})
    if status != 200 or not body:
        return CheckResult("", False, f"targets API returned HTTP {status}")

    targets = [
        target for target in body.get("data", {}).get("activeTargets", [])
        if target.get("labels", {}).get("job") == job or target.get("scrapePool") == job
    ]
    if not targets:
        return CheckResult("", False, f"no '{job}' targets found in Prometheus")
    up = [target for target in targets if target.get("health") == "up"]
    if up:
        return CheckResult("", True, f"scraping {len(up)}/{len(targets)} Jenkins target(s)")
    errors = "; ".join(sorted({t.get("lastError", "") for t in targets if t.get("lastError")}))
    return CheckResult("", False, f"0/{len(targets)} Jenkins targets up. Last error: {errors or 'n/a'}")


def check_jenkins_up_metric(session: requests.Session, prometheus_url: str, job: str = JENKINS_SCRAPE_JOB) -> CheckResult:
    """The ``up`` series for the Jenkins job reports 1 for some instance."""
    status, body = http_get_json(session, f"{prometheus_url}/api/v1/query", params={"query": f'up{{job="{job}"}}'})
    if status != 200 or not body or body.get("status") != "success":
        return CheckResult("", False, f"query API returned HTTP {status}")
    series = body.get("data", {}).get("result", [])
    reporting = [s for s in series if len(s.get("value", [])) > 1 and s["value"][1] == "1"]
    if reporting:
        instances = ", ".join(s.get("metric", {}).get("instance", "?") for s in reporting)
        return CheckResult("", True, f"up=1 for {instances}")
    return CheckResult("", False, f"no instance of job '{job}' reports up=1")


def validate_docker(config: Config, session: Optional[requests.Session] = None) -> ValidationReport:
    """Reachability and scrape wiring of the Docker Compose deployment."""
    output.info("Validating deployment...")
    session = session or new_session()
    timeout = config.http_timeout
    report = ValidationReport()

    report.run("Jenkins load balancer", lambda: check_http(session, f"{config.jenkins_url}/login", timeout))
    report.run(
        "Prometheus API",
        lambda: check_http(session, f"{config.prometheus_url}/api/v1/status/buildinfo", timeout),
    )
    report.run("Prometheus scraping Jenkins", lambda: check_jenkins_targets(session, config.prometheus_url))
    report.run("Jenkins up metric", lambda: check_jenkins_up_metric(session, config.prometheus_url))
    report.run("Grafana API", lambda: check_http(session, f"{config.grafana_url}/api/health", timeout))

    report.print_summary()
    return report


def check_servicemonitor(names: KubeNames) -> CheckResult:
    namespace = kube.servicemonitor_namespace(names)
    if namespace:
        return CheckResult("", True, f"found in namespace '{namespace}'")
    return CheckResult(
        "",
        False,
        f"not found in '{names.namespace}' or '{kube.MONITORING_NAMESPACE}'. "
        "A Prometheus Operator must be installed for the ServiceMonitor to be created and used.",
    )


def validate_k8s(
    config: Config,
    names: KubeNames,
    access_url: Optional[str],
    session: Optional[requests.Session] = None,
) -> ValidationReport:
    """Reachability and monitoring wiring of the Helm deployment."""
    output.info("Validating Kubernetes deployment...")
    session = session or new_session()
    report = ValidationReport()

    if access_url:
        report.run("Jenkins endpoint", lambda: check_http(session, f"{access_url}/login", config.http_timeout))
    else:
        report.run("Jenkins endpoint", lambda: CheckResult("", False, "access URL could not be determined"))
    report.run("Jenkins ServiceMonitor", lambda: check_servicemonitor(names))

    report.print_summary()
    return report
