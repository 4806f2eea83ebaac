import json

import pytest

from conftest import FakeResponse
from jenkins_ha_tools.naming import kube_names
from jenkins_ha_tools.validate import CheckResult, ValidationReport, validate_docker, validate_k8s

PROMETHEUS = "http://localhost:9090"


def jenkins_target(health, last_error=""):
    return {
        "labels": {"job": "jenkins", "instance": "jenkins-1:8080"},
        "scrapePool": "jenkins",
        "health": health,
        "lastError": last_error,
    }


@pytest.fixture
def reachable(session):
    """LB, Prometheus and Grafana all answer."""
    session.route("GET", "https://localhost/login", FakeResponse(200))
    session.route("GET", f"{PROMETHEUS}/api/v1/status/buildinfo", FakeResponse(200))
    session.route("GET", "http://localhost:3000/api/health", FakeResponse(200))
    return session


def test_healthy_deployment_passes(config, reachable):
    reachable.route("GET", f"{PROMETHEUS}/api/v1/targets", FakeResponse(200, json_data={
        "status": "success", "data": {"activeTargets": [jenkins_target("up")]},
    }))
    reachable.route("GET", f"{PROMETHEUS}/api/v1/query", FakeResponse(200, json_data={
        "status": "success",
        "data": {"result": [{"metric": {"instance": "jenkins-1:8080"}, "value": [1700000000, "1"]}]},
    }))

    report = validate_docker(config, session=reachable)

    assert report.all_passed
    assert len(report.checks) == 5


def test_scrape_failure_is_reported_without_aborting(config, reachable, capsys):
    reachable.route("GET", f"{PROMETHEUS}/api/v1/targets", FakeResponse(200, json_data={
        "status": "success",
        "data": {"activeTargets": [jenkins_target("down", "connection refused")]},
    }))
    reachable.route("GET", f"{PROMETHEUS}/api/v1/query", FakeResponse(200, json_data={
        "status": "success", "data": {"result": []},
    }))

    report = validate_docker(config, session=reachable)

    assert not report.all_passed
    assert report.result("Jenkins load balancer").passed
    assert report.result("Prometheus API").passed
    assert report.result("Grafana API").passed
    scraping = report.result("Prometheus scraping Jenkins")
    assert not scraping.passed
    assert "connection refused" in scraping.detail
    assert not report.result("Jenkins up metric").passed

    out = capsys.readouterr().out
    assert "PASS: Grafana API" in out
    assert "FAIL: Prometheus scraping Jenkins" in out


def test_unreachable_prometheus_fails_checks_without_raising(config, session):
    report = validate_docker(config, session=session)

    assert len(report.checks) == 5
    assert not any(check.passed for check in report.checks)


def test_missing_jenkins_job_in_prometheus(config, reachable):
    reachable.route("GET", f"{PROMETHEUS}/api/v1/targets", FakeResponse(200, json_data={
        "status": "success", "data": {"activeTargets": []},
    }))

    report = validate_docker(config, session=reachable)

    assert "no 'jenkins' targets" in report.result("Prometheus scraping Jenkins").detail


def test_report_records_names():
    report = ValidationReport()

    report.run("custom", lambda: CheckResult("", True, "fine"))

    assert report.result("custom").passed
    assert report.result("other") is None


class TestKubernetes:
    def test_servicemonitor_and_endpoint(self, config, session, runner):
        session.route("GET", "http://jenkins-demo.local/login", FakeResponse(200))
        runner.on("kubectl", "get", "servicemonitor", stdout=json.dumps({"items": [{"metadata": {"name": "x"}}]}))

        report = validate_k8s(config, kube_names(config), "http://jenkins-demo.local", session=session)

        assert report.all_passed
        assert "jenkins-demo" in report.result("Jenkins ServiceMonitor").detail

    def test_missing_url_and_servicemonitor(self, config, session, runner):
        runner.on("kubectl", "get", "servicemonitor", stdout=json.dumps({"items": []}))

        report = validate_k8s(config, kube_names(config), None, session=session)

        assert not report.result("Jenkins endpoint").passed
        servicemonitor = report.result("Jenkins ServiceMonitor")
        assert not servicemonitor.passed
        assert "Prometheus Operator" in servicemonitor.detail
