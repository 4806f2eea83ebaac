"""
End-to-end demo runs: deploy, wait, configure, validate.

Both runs are strictly sequential. If anything fatal happens (or the user
interrupts) after deployment has started, the partially created compute
resources are torn down before the error propagates.
"""

import time
from typing import Callable, List, Optional

import requests

from . import compose, kube, output
from .config import Config
from .jenkins import configure_sample_job, sample_job
from .materialize import MonitoringArtifacts, monitoring_artifacts, remove_artifacts
from .naming import DockerNames, KubeNames, docker_names, kube_names
from .probe import ProbeResult, ReadinessProbe, ServiceEndpoint, require_ready
from .reset import Confirm, reset_k8s
from .utils import ConvergenceError, ProbeFailed, new_session, run_command, wait_for_http
from .validate import ValidationReport, validate_docker, validate_k8s


def _probe(
    endpoint: ServiceEndpoint,
    config: Config,
    attempts: int,
    session: requests.Session,
    sleep: Callable[[float], None],
) -> ProbeResult:
    return ReadinessProbe(
        endpoint,
        interval=config.probe_interval,
        max_attempts=attempts,
        session=session,
        http_timeout=config.http_timeout,
        sleep=sleep,
    ).run()


# Docker Compose


def run_setup_script(config: Config) -> None:
    """Run the repository's setup.sh (directories, certificates). Never fatal."""
    config.jenkins_home_path.mkdir(parents=True, exist_ok=True)
    if not config.setup_script.exists():
        output.warn("setup.sh not found. Skipping directory and certificate setup. This might cause issues.")
        return
    output.info("Running setup.sh to prepare directories and certificates...")
    result = run_command(["bash", str(config.setup_script)], cwd=str(config.root))
    if result.returncode == 0:
        output.info("setup.sh completed successfully.")
    else:
        output.error("setup.sh failed. Please check its output.")
        output.block(result.stderr)
        output.warn("Continuing despite setup.sh issues. SSL certs for Nginx might be missing.")


def teardown_stacks(config: Config, names: DockerNames) -> None:
    """Non-interactive compose down of both stacks plus generated files."""
    output.info("Cleaning up existing Docker resources (if any)...")
    if config.jenkins_compose_file.exists():
        output.info(f"Stopping and removing Jenkins services defined in {config.jenkins_compose_file}...")
        if not compose.down(config, names.jenkins_project, config.jenkins_compose_file):
            output.warn("Jenkins services were not running or could not be removed.")
    if config.monitoring_dir.is_dir():
        with monitoring_artifacts(config, names) as artifacts:
            output.info(f"Stopping and removing monitoring services (project '{names.monitoring_project}')...")
            if not compose.down(config, names.monitoring_project, artifacts.compose_file):
                output.warn("Monitoring services were not running or could not be removed.")
    else:
        output.warn(f"{config.monitoring_dir} not found. Skipping monitoring cleanup.")
    remove_artifacts(config)
    output.info("Docker cleanup complete.")


def deploy_jenkins_stack(config: Config, names: DockerNames) -> None:
    output.info(f"Deploying Jenkins HA stack using {config.jenkins_compose_file} (project '{names.jenkins_project}')...")
    compose.up(config, names.jenkins_project, config.jenkins_compose_file)
    output.info("Jenkins HA stack deployment initiated.")
    output.info(f"The Jenkins network is expected to be named: {names.jenkins_network}")
    if not compose.network_exists(names.jenkins_network):
        output.warn(
            f"Docker network '{names.jenkins_network}' does not exist. The derived name may not match "
            "what compose created; the monitoring stack will fail to join it."
        )


def deploy_monitoring_stack(config: Config, names: DockerNames, artifacts: MonitoringArtifacts) -> None:
    output.info(f"Deploying monitoring stack using {artifacts.compose_file}...")
    compose.up(config, names.monitoring_project, artifacts.compose_file)
    output.info(f"Monitoring stack deployment initiated with project name '{names.monitoring_project}'.")


def jenkins_endpoints(config: Config) -> List[ServiceEndpoint]:
    """Both controllers on their host ports, then the load balancer."""
    tail = config.log_tail_lines
    endpoints = []
    for index, (container, port) in enumerate(zip(config.jenkins_containers, config.jenkins_host_ports), start=1):
        endpoints.append(ServiceEndpoint(
            name=f"Jenkins-{index}",
            url=f"http://localhost:{port}/login",
            health=lambda c=container: compose.container_health(c),
            logs=lambda c=container: compose.container_logs(c, tail),
        ))
    lb = config.jenkins_lb_container
    endpoints.append(ServiceEndpoint(
        name="Jenkins via Nginx",
        url=f"{config.jenkins_url}/login",
        health=lambda: compose.container_health(lb),
        logs=lambda: compose.container_logs(lb, tail),
    ))
    return endpoints


def monitoring_endpoints(config: Config, names: DockerNames, artifacts: MonitoringArtifacts) -> List[ServiceEndpoint]:
    project, compose_file, tail = names.monitoring_project, artifacts.compose_file, config.log_tail_lines

    def endpoint(name: str, service: str, url: str) -> ServiceEndpoint:
        return ServiceEndpoint(
            name=name,
            url=url,
            health=lambda: compose.service_health(config, project, compose_file, service),
            logs=lambda: compose.service_logs(config, project, compose_file, service, tail),
        )

    return [
        endpoint("Prometheus", "prometheus", f"{config.prometheus_url}/-/ready"),
        endpoint("Grafana", "grafana", f"{config.grafana_url}/api/health"),
    ]


def print_access_info(config: Config) -> None:
    output.info("--- Access Information ---")
    output.field("Jenkins URL", f"{config.jenkins_url}/")
    output.field("Jenkins Admin User", config.jenkins_admin_user)
    output.field("Jenkins Admin Password", config.jenkins_admin_password)
    output.field("Prometheus URL", f"{config.prometheus_url}/")
    output.field("Grafana URL", f"{config.grafana_url}/")
    output.field("Grafana Credentials", f"{config.grafana_admin_user} / {config.grafana_admin_password}")
    output.field("Sample Jenkins Job", f"{config.jenkins_url}/job/{sample_job(config).name}/")
    output.info("--- End of Access Information ---")
    output.warn(f"For {config.jenkins_url} you might need to add an /etc/hosts entry")
    output.warn("and/or accept the self-signed certificate warning in your browser.")


def run_docker_demo(
    config: Config,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ValidationReport:
    """
    Deploy the Docker Compose demo and validate it.

    Raises:
        PrerequisiteError: If docker or compose is missing
        ConvergenceError: If compose rejects either stack
        ProbeFailed: If a Jenkins endpoint never becomes ready
    """
    output.info("Starting Docker Demo Deployment...")
    compose.check_prerequisites(config)
    config.announce("docker")
    names = docker_names(config)
    session = session or new_session()

    teardown_stacks(config, names)
    run_setup_script(config)

    completed = False
    try:
        deploy_jenkins_stack(config, names)
        with monitoring_artifacts(config, names) as artifacts:
            deploy_monitoring_stack(config, names, artifacts)

            output.info("Waiting for Jenkins instances to become available...")
            require_ready(
                _probe(endpoint, config, config.probe_attempts, session, sleep)
                for endpoint in jenkins_endpoints(config)
            )
            output.info("All Jenkins instances and Nginx are responsive.")

            output.info("Waiting for monitoring services...")
            for endpoint in monitoring_endpoints(config, names, artifacts):
                if not _probe(endpoint, config, config.probe_attempts, session, sleep).ready:
                    output.error(f"{endpoint.name} failed to start, proceeding without it.")

            configure_sample_job(
                config,
                config.jenkins_url,
                config.jenkins_admin_user,
                config.jenkins_admin_password,
                sample_job(config, "docker"),
            )
            report = validate_docker(config, session=session)

        print_access_info(config)
        output.info("Docker Demo Deployment Completed!")
        output.info("To clean up, run this command again (it cleans up first) or run 'jha reset'.")
        completed = True
        return report
    except ConvergenceError as e:
        output.block(e.output)
        raise
    finally:
        if not completed:
            output.warn("Deployment did not complete. Removing partially created resources...")
            teardown_stacks(config, names)


# Kubernetes


def wait_for_jenkins_k8s(
    config: Config,
    names: KubeNames,
    manifest: dict,
    session: requests.Session,
    sleep: Callable[[float], None],
) -> None:
    """
    Wait for the StatefulSet rollout, then for every Jenkins pod to be Ready.

    Raises:
        ProbeFailed: If the rollout or any pod does not become ready
    """
    output.info(f"Waiting for Jenkins pods in release '{names.release}' to be ready...")
    timeout = int(config.k8s_probe_attempts * config.probe_interval)
    tail = config.log_tail_lines

    statefulset = kube.resolve_object_name(names, "StatefulSet", manifest)
    if statefulset is None:
        output.error(
            f"Could not determine Jenkins StatefulSet name (tried {', '.join(names.object_name_candidates())}). "
            "Skipping wait for StatefulSet readiness. Pod checks will follow."
        )
    else:
        output.info(f"Waiting for StatefulSet '{statefulset}' to be ready...")
        if not kube.rollout_status(names.namespace, statefulset, timeout):
            output.error(f"Jenkins StatefulSet '{statefulset}' did not become ready in time.")
            output.block(kube.describe("statefulset", statefulset, names.namespace))
            output.block(kube.release_logs(names, tail))
            raise ProbeFailed(f"StatefulSet '{statefulset}' rollout did not complete")
        output.info(f"Jenkins StatefulSet '{statefulset}' is ready.")

    pods = kube.pod_names(names)
    if not pods:
        raise ProbeFailed(f"No Jenkins pods found for release '{names.release}'. Deployment likely failed.")

    namespace = names.namespace
    require_ready(
        _probe(
            ServiceEndpoint(
                name=f"Pod {pod}",
                health=lambda p=pod: kube.pod_health(namespace, p),
                logs=lambda p=pod: kube.describe("pod", p, namespace) + kube.pod_logs(namespace, p, tail),
            ),
            config,
            config.k8s_probe_attempts,
            session,
            sleep,
        )
        for pod in pods
    )
    output.info("All Jenkins pods are ready.")


def print_access_info_k8s(config: Config, names: KubeNames, access_url: Optional[str], object_name: str) -> None:
    output.info("--- Kubernetes Access Information ---")
    if access_url:
        output.field("Jenkins URL", f"{access_url}/")
        output.field("Sample Jenkins Job", f"{access_url}/job/{sample_job(config, 'k8s').name}/")
    else:
        output.error("Jenkins URL could not be automatically determined.")
        output.info(f"Try 'kubectl get svc,ing -n {names.namespace}' or use port-forwarding:")
        output.info(f"kubectl port-forward svc/{object_name} 8080:8080 -n {names.namespace}")
    output.field("Jenkins Admin User", config.k8s_admin_user)
    output.field("Jenkins Admin Password", config.k8s_admin_password)
    output.field("To access Jenkins pods", f"kubectl get pods -n {names.namespace} -l {names.instance_selector}")
    pods = kube.pod_names(names)
    if pods:
        output.field("To view Jenkins logs", f"kubectl logs -f {pods[0]} -n {names.namespace}")
    output.field("Helm Release Name", names.release)
    output.field("Namespace", names.namespace)
    if access_url and config.ingress_host in access_url:
        output.warn(f"Ensure {config.ingress_host} resolves to your Ingress controller IP (/etc/hosts or DNS).")
    output.info("--- End of Kubernetes Access Information ---")


def run_k8s_demo(
    config: Config,
    confirm: Confirm,
    session: Optional[requests.Session] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> ValidationReport:
    """
    Deploy the Helm chart and validate it.

    Raises:
        PrerequisiteError: If kubectl/helm are missing or the cluster is unreachable
        ConvergenceError: If the namespace or the Helm release cannot be converged
        ProbeFailed: If Jenkins pods never become ready
    """
    output.info("Starting Kubernetes Demo Deployment...")
    kube.check_prerequisites()
    config.announce("k8s")
    names = kube_names(config)
    session = session or new_session()

    if confirm(
        f"Do you want to clean up any existing '{names.release}' resources "
        f"in namespace '{names.namespace}' before proceeding?"
    ):
        reset_k8s(config, confirm)
    else:
        output.info("Skipping cleanup of existing resources.")

    completed = False
    try:
        kube.ensure_namespace(names.namespace)
        try:
            kube.helm_upgrade_install(config, names)
        except ConvergenceError as e:
            output.block(e.output)
            output.block(kube.release_logs(names, config.log_tail_lines))
            raise

        manifest = kube.manifest_names(names)
        wait_for_jenkins_k8s(config, names, manifest, session, sleep)

        object_name = kube.resolve_object_name(names, "Ingress", manifest) or names.fullname
        access_url = kube.discover_access_url(config, names, object_name)
        if access_url:
            output.info(f"Waiting for Jenkins to be fully available via {access_url}...")
            if not wait_for_http(f"{access_url}/login", timeout=60, interval=5, session=session):
                output.warn(f"Jenkins is not answering at {access_url} yet. Trying to configure it anyway.")
            configure_sample_job(
                config,
                access_url,
                config.k8s_admin_user,
                config.k8s_admin_password,
                sample_job(config, "k8s"),
            )
        else:
            output.warn("Skipping sample job creation as Jenkins URL could not be determined.")

        report = validate_k8s(config, names, access_url, session=session)
        print_access_info_k8s(config, names, access_url, object_name)
        output.info("Kubernetes Demo Deployment Completed!")
        output.info("To clean up, run 'jha reset'.")
        completed = True
        return report
    finally:
        if not completed:
            output.warn(
                f"Exiting prematurely. Uninstalling release '{names.release}' from namespace "
                f"'{names.namespace}'; storage and namespace are left for 'jha reset'."
            )
            if kube.release_exists(names) and not kube.helm_uninstall(names):
                output.warn(f"Could not uninstall release '{names.release}'. Manual cleanup might be required.")
