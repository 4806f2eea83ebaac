"""Jenkins operations: CSRF crumbs and idempotent pipeline job management."""

from dataclasses import dataclass
from string import Template
from typing import Optional, Tuple
from urllib.parse import quote
from xml.sax.saxutils import escape

import requests

from . import output
from .config import Config
from .utils import CrumbError, DemoError, HTTPError, new_session

CRUMB_XPATH = 'concat(//crumbRequestField,":",//crumb)'
SUCCESS_CODES = (200, 302)

DOCKER_SAMPLE_JOB = "Sample-Demo-Pipeline"
K8S_SAMPLE_JOB = "K8s-Sample-Demo-Pipeline"


@dataclass(frozen=True)
class JobDefinition:
    """A pipeline job keyed by name."""
    name: str
    description: str
    script: str

    def to_xml(self, config: Config) -> str:
        """Render the job's config.xml."""
        with open(config.get_template_path("jenkins/pipeline-job.xml")) as f:
            template = Template(f.read())
        return template.substitute(
            description=escape(self.description),
            script=escape(self.script),
        )


def sample_job(config: Config, platform: str = "docker") -> JobDefinition:
    """The demo pipeline pushed after deployment."""
    if platform == "k8s":
        name, script_file = K8S_SAMPLE_JOB, "jenkins/sample-pipeline-k8s.groovy"
        description = "A sample pipeline job created by the K8s demo."
    else:
        name, script_file = DOCKER_SAMPLE_JOB, "jenkins/sample-pipeline.groovy"
        description = "A sample pipeline job created by the demo."
    with open(config.get_template_path(script_file)) as f:
        script = f.read()
    return JobDefinition(name=name, description=description, script=script)


class JenkinsClient:
    """Minimal client for the Jenkins remote API."""

    def __init__(self, base_url: str, username: str, password: str, session: Optional[requests.Session] = None, timeout: float = 30):
        self.base_url = base_url.rstrip("/")
        self.session = session or new_session(username, password)
        self.timeout = timeout

    def job_url(self, job_name: str) -> str:
        return f"{self.base_url}/job/{quote(job_name, safe='')}"

    def get_crumb(self) -> Tuple[str, str]:
        """
        Fetch a CSRF crumb.

        Crumbs are bound to the web session, so the same session must be
        used for the request that carries it.

        Returns:
            Tuple of (header name, crumb value)

        Raises:
            CrumbError: If no crumb is issued
        """
        url = f"{self.base_url}/crumbIssuer/api/xml"
        try:
            response = self.session.get(url, params={"xpath": CRUMB_XPATH}, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise CrumbError(f"Failed to fetch Jenkins CSRF crumb from {self.base_url}: {e}") from e

        text = response.text.strip() if response.status_code == 200 else ""
        field, _, crumb = text.partition(":")
        if not field or not crumb:
            raise CrumbError(
                f"Failed to fetch Jenkins CSRF crumb from {self.base_url} "
                f"(HTTP {response.status_code}): {response.text[:200]}"
            )
        return field, crumb

    def job_exists(self, job_name: str) -> bool:
        """
        Check if a Jenkins job exists.

        Args:
            job_name: Job name to check

        Returns:
            True if job exists, False otherwise
        """
        try:
            response = self.session.get(f"{self.job_url(job_name)}/config.xml", timeout=self.timeout)
        except requests.exceptions.RequestException:
            return False
        return response.status_code == 200

    def _post_xml(self, url: str, xml: str, params: Optional[dict] = None) -> requests.Response:
        field, crumb = self.get_crumb()
        try:
            return self.session.post(
                url,
                params=params,
                data=xml.encode("utf-8"),
                headers={field: crumb, "Content-Type": "application/xml"},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise HTTPError(f"POST {url} failed: {e}") from e

    def create_or_update_job(self, job_name: str, xml: str) -> str:
        """
        Create the job, or replace its definition if it already exists.

        Returns:
            "created" or "updated"

        Raises:
            CrumbError: If no crumb could be obtained
            HTTPError: If Jenkins rejects the request
        """
        if self.job_exists(job_name):
            action = "updated"
            response = self._post_xml(f"{self.job_url(job_name)}/config.xml", xml)
        else:
            action = "created"
            response = self._post_xml(f"{self.base_url}/createItem", xml, params={"name": job_name})

        if response.status_code not in SUCCESS_CODES:
            raise HTTPError(
                f"Failed to {action.rstrip('d')} job '{job_name}': HTTP {response.status_code}\n{response.text[:500]}"
            )
        return action


def configure_sample_job(
    config: Config,
    base_url: str,
    username: str,
    password: str,
    job: JobDefinition,
    session: Optional[requests.Session] = None,
) -> bool:
    """
    Push the sample job, logging instead of raising on failure.

    Returns:
        True if the job was created or updated
    """
    output.info(f"Creating or updating sample Jenkins job '{job.name}' on {base_url}...")
    client = JenkinsClient(base_url, username, password, session=session)
    try:
        action = client.create_or_update_job(job.name, job.to_xml(config))
    except CrumbError as e:
        output.error(str(e))
        output.error("Cannot create sample job due to missing CSRF crumb.")
        return False
    except DemoError as e:
        output.error(str(e))
        return False

    output.info(f"Sample Jenkins job '{job.name}' {action} successfully.")
    output.info(f"To trigger the job: {client.job_url(job.name)}/build?delay=0sec")
    return True
