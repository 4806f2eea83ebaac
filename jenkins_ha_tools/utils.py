"""Utility functions for subprocess calls, HTTP requests, polling, and common errors."""

import shutil
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

import requests
import urllib3
from requests.auth import HTTPBasicAuth


class DemoError(Exception):
    """Base exception for Jenkins HA tools errors."""
    pass


class PrerequisiteError(DemoError):
    """Raised when a required command line tool is missing or unusable."""
    pass


class ConvergenceError(DemoError):
    """Raised when an orchestrator rejects the desired state."""

    def __init__(self, message: str, returncode: int = 1, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class HTTPError(DemoError):
    """Exception raised for HTTP errors."""
    pass


class DockerError(DemoError):
    """Exception raised for Docker operations errors."""
    pass


class CrumbError(HTTPError):
    """Raised when Jenkins does not issue a CSRF crumb."""
    pass


class ProbeFailed(DemoError):
    """Raised when a service never became ready within its attempt budget."""
    pass


def run_command(
    command: List[str],
    cwd: Optional[str] = None,
    check: bool = False,
    env: Optional[Dict[str, str]] = None,
    input: Optional[str] = None,
    timeout: Optional[float] = None,
) -> subprocess.CompletedProcess:
    """
    Run an external command and capture its output.

    Args:
        command: Command and arguments as list
        cwd: Working directory
        check: Whether to raise exception on non-zero exit
        env: Full environment for the child process (None inherits ours)
        input: Text piped to stdin
        timeout: Seconds before the child is killed

    Returns:
        CompletedProcess instance

    Raises:
        subprocess.CalledProcessError: If check=True and command fails
        DemoError: If the executable cannot be started at all
    """
    try:
        return subprocess.run(
            command,
            cwd=cwd,
            env=env,
            input=input,
            capture_output=True,
            text=True,
            check=check,
            timeout=timeout,
        )
    except FileNotFoundError as e:
        raise PrerequisiteError(f"Command not found: {command[0]}") from e
    except subprocess.TimeoutExpired as e:
        raise DemoError(f"Command timed out after {timeout}s: {' '.join(command)}") from e


def succeeded(command: List[str], **kwargs) -> bool:
    """Run a command and report only whether it exited 0."""
    try:
        return run_command(command, **kwargs).returncode == 0
    except DemoError:
        return False


def require_tool(name: str, version_args: Optional[List[str]] = None) -> str:
    """
    Ensure a CLI tool is on PATH and return its version banner.

    Raises:
        PrerequisiteError: If the tool is not installed
    """
    if shutil.which(name) is None:
        raise PrerequisiteError(f"{name} is not installed. Please install {name} and try again.")
    if not version_args:
        return name
    result = run_command([name, *version_args])
    banner = (result.stdout or result.stderr or "").strip()
    return banner.splitlines()[0] if banner else name


@dataclass(frozen=True)
class PollResult:
    """Outcome of a bounded polling loop."""
    ok: bool
    attempts: int
    elapsed: float


def poll_until(
    predicate: Callable[[], bool],
    interval: float,
    max_attempts: int,
    on_retry: Optional[Callable[[int, int], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> PollResult:
    """
    Call ``predicate`` until it returns True or the budget runs out.

    The budget is both ``max_attempts`` calls and a wall-clock deadline of
    ``max_attempts * interval`` seconds, whichever is hit first. With a zero
    interval only the attempt count applies. No sleep happens after the last
    attempt.

    Args:
        predicate: Zero-argument check, True means done
        interval: Seconds between attempts
        max_attempts: Maximum number of predicate calls (>= 1)
        on_retry: Called with (attempt, max_attempts) before each sleep
        sleep: Sleep function (injected in tests)
        clock: Monotonic clock (injected in tests)

    Returns:
        PollResult
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    if interval < 0:
        raise ValueError("interval must not be negative")

    start = clock()
    deadline = start + max_attempts * interval if interval > 0 else None
    attempt = 0
    while True:
        attempt += 1
        if predicate():
            return PollResult(True, attempt, clock() - start)

        remaining = interval if deadline is None else deadline - clock()
        if attempt >= max_attempts or (deadline is not None and remaining <= 0):
            return PollResult(False, attempt, clock() - start)

        if on_retry is not None:
            on_retry(attempt, max_attempts)
        sleep(min(interval, remaining))


def new_session(
    username: Optional[str] = None,
    password: Optional[str] = None,
    verify: bool = False,
) -> requests.Session:
    """
    Create an HTTP session, optionally with basic auth.

    Certificate verification is off by default because the demo stacks
    terminate TLS with self-signed certificates.
    """
    session = requests.Session()
    session.verify = verify
    if not verify:
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
    if username is not None:
        session.auth = HTTPBasicAuth(username, password or "")
    return session


def http_ok(session: requests.Session, url: str, timeout: float = 5) -> bool:
    """
    Check whether a URL answers with a 2xx status.

    Returns:
        True on 2xx, False on any other status or network error
    """
    try:
        response = session.get(url, timeout=timeout, allow_redirects=True)
        return 200 <= response.status_code < 300
    except requests.exceptions.RequestException:
        return False


def http_get_json(session: requests.Session, url: str, params: Optional[dict] = None, timeout: float = 10) -> Tuple[int, Optional[dict]]:
    """
    Perform HTTP GET and decode a JSON body.

    Returns:
        Tuple of (status_code, decoded body or None)

    Raises:
        HTTPError: If request fails
    """
    try:
        response = session.get(url, params=params, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise HTTPError(f"GET request failed: {e}") from e
    try:
        return response.status_code, response.json()
    except ValueError:
        return response.status_code, None


def wait_for_http(url: str, timeout: int = 60, interval: int = 2, session: Optional[requests.Session] = None) -> bool:
    """
    Wait for an HTTP endpoint to become available.

    Args:
        url: The URL to check
        timeout: Maximum time to wait in seconds (default: 60)
        interval: Time between checks in seconds (default: 2)
        session: Optional session to reuse

    Returns:
        True if endpoint becomes available, False if timeout
    """
    session = session or new_session()
    attempts = max(1, timeout // max(1, interval))
    return poll_until(lambda: http_ok(session, url), interval, attempts).ok
