import pytest

from conftest import FakeResponse
from jenkins_ha_tools.probe import (
    HealthStatus,
    ProbeResult,
    ProbeState,
    ReadinessProbe,
    ServiceEndpoint,
    require_ready,
)
from jenkins_ha_tools.utils import ProbeFailed


def make_probe(endpoint, session, clock, attempts=3, interval=10):
    return ReadinessProbe(
        endpoint, interval=interval, max_attempts=attempts,
        session=session, sleep=clock.sleep, clock=clock,
    )


class LogSource:
    def __init__(self, text="boom"):
        self.text = text
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.text


def test_endpoint_needs_a_signal():
    with pytest.raises(ValueError):
        ServiceEndpoint(name="nothing")


def test_healthy_container_is_ready_without_http(session, clock):
    probe = make_probe(
        ServiceEndpoint("Jenkins-1", url="http://localhost:8080/login", health=lambda: HealthStatus.HEALTHY),
        session, clock,
    )

    result = probe.run()

    assert result.state == ProbeState.READY
    assert result.attempts == 1
    assert session.calls == []


def test_running_container_waits_for_http(session, clock):
    session.route("GET", "http://localhost:8081/login", FakeResponse(503), FakeResponse(200))
    probe = make_probe(
        ServiceEndpoint("Jenkins-2", url="http://localhost:8081/login", health=lambda: HealthStatus.RUNNING),
        session, clock,
    )

    result = probe.run()

    assert result.ready
    assert result.attempts == 2
    assert result.last_health == HealthStatus.RUNNING


def test_running_without_url_is_ready(session, clock):
    result = make_probe(ServiceEndpoint("node-exporter", health=lambda: HealthStatus.RUNNING), session, clock).run()

    assert result.ready


def test_failure_after_budget_dumps_logs_once(session, clock, capsys):
    logs = LogSource("java.lang.OutOfMemoryError")
    probe = make_probe(
        ServiceEndpoint("Jenkins via Nginx", url="https://localhost/login",
                        health=lambda: HealthStatus.STARTING, logs=logs),
        session, clock, attempts=3, interval=10,
    )

    result = probe.run()

    assert result.state == ProbeState.FAILED
    assert result.attempts == 3
    assert logs.calls == 1
    assert clock.now <= 3 * 10
    assert "java.lang.OutOfMemoryError" in capsys.readouterr().out


def test_crash_loop_keeps_polling_and_dumps_logs_once(session, clock):
    states = iter([HealthStatus.EXITED, HealthStatus.EXITED, HealthStatus.HEALTHY])
    logs = LogSource()
    probe = make_probe(ServiceEndpoint("Jenkins-1", health=lambda: next(states), logs=logs), session, clock)

    result = probe.run()

    assert result.ready
    assert result.attempts == 3
    assert logs.calls == 1


def test_exited_until_budget_dumps_logs_once(session, clock):
    logs = LogSource()
    probe = make_probe(ServiceEndpoint("Jenkins-1", health=lambda: HealthStatus.EXITED, logs=logs), session, clock)

    assert probe.run().state == ProbeState.FAILED
    assert logs.calls == 1


def test_final_state_is_sticky(session, clock):
    calls = []

    def health():
        calls.append(1)
        return HealthStatus.HEALTHY

    probe = make_probe(ServiceEndpoint("Grafana", health=health), session, clock)

    first = probe.run()
    second = probe.run()

    assert first is second
    assert len(calls) == 1


def test_require_ready_names_failures():
    results = [
        ProbeResult("Jenkins-1", ProbeState.READY),
        ProbeResult("Jenkins-2", ProbeState.FAILED),
    ]

    with pytest.raises(ProbeFailed, match="Jenkins-2"):
        require_ready(results)


def test_require_ready_stops_at_first_failure():
    started = []

    def results():
        for name in ("Jenkins-1", "Jenkins-2", "Jenkins via Nginx"):
            started.append(name)
            yield ProbeResult(name, ProbeState.FAILED, attempts=3)

    with pytest.raises(ProbeFailed, match="Jenkins-1 did not become ready after 3 attempts"):
        require_ready(results())

    assert started == ["Jenkins-1"]
    require_ready(results[:1])
