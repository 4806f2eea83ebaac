"""Shared fixtures: a scratch deployment root, fake subprocess runner, fake HTTP session."""

import subprocess

import pytest
import requests

from jenkins_ha_tools.config import DEFAULTS, Config, reset_config


class FakeRunner:
    """Stand-in for ``subprocess.run`` answering by command prefix."""

    def __init__(self):
        self.calls = []
        self._routes = []

    def on(self, *prefix, returncode=0, stdout="", stderr="", handler=None):
        """Register a reply; ``handler(command)`` may return (returncode, stdout)."""
        self._routes.append((list(prefix), returncode, stdout, stderr, handler))

    def __call__(self, command, **kwargs):
        command = [str(part) for part in command]
        self.calls.append(command)
        # Later registrations win
        for prefix, returncode, stdout, stderr, handler in reversed(self._routes):
            if command[:len(prefix)] == prefix:
                if handler is not None:
                    returncode, stdout = handler(command)
                return subprocess.CompletedProcess(command, returncode, stdout, stderr)
        return subprocess.CompletedProcess(command, 1, "", "not found")

    def ran(self, *words):
        """Commands containing every word in ``words``."""
        return [call for call in self.calls if all(word in call for word in words)]


class FakeResponse:
    def __init__(self, status_code=200, text="", json_data=None):
        self.status_code = status_code
        self.text = text
        self._json = json_data

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeSession:
    """
    Minimal requests.Session replacement keyed by (method, url).

    A route holding several responses hands them out in order and then keeps
    returning the last one. Unrouted URLs raise ConnectionError.
    """

    def __init__(self):
        self.routes = {}
        self.calls = []

    def route(self, method, url, *responses):
        self.routes[(method, url)] = list(responses)

    def _respond(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        queue = self.routes.get((method, url))
        if not queue:
            raise requests.exceptions.ConnectionError(f"No route for {method} {url}")
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def get(self, url, **kwargs):
        return self._respond("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._respond("POST", url, **kwargs)

    def posts(self):
        return [(url, kwargs) for method, url, kwargs in self.calls if method == "POST"]


@pytest.fixture(autouse=True)
def _fresh_global_config():
    reset_config()
    yield
    reset_config()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every recognized setting from the process environment."""
    for key in list(DEFAULTS) + ["DEPLOY_ROOT"]:
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def deploy_root(tmp_path):
    """A deployment repository with the Jenkins compose file in place."""
    compose_dir = tmp_path / "docker-compose"
    (compose_dir / "monitoring" / "prometheus").mkdir(parents=True)
    (compose_dir / "docker-compose.yml").write_text("services: {}\n")
    return tmp_path


@pytest.fixture
def make_config(deploy_root):
    def factory(**environ):
        return Config(root=str(deploy_root), environ=environ)
    return factory


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def runner(monkeypatch):
    fake = FakeRunner()
    monkeypatch.setattr("jenkins_ha_tools.utils.subprocess.run", fake)
    monkeypatch.setattr("jenkins_ha_tools.utils.shutil.which", lambda name: f"/usr/bin/{name}")
    return fake


@pytest.fixture
def session():
    return FakeSession()


class FakeClock:
    """Monotonic clock that only advances when slept on."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
