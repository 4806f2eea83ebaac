"""Kubernetes and Helm operations for the Jenkins HA chart."""

import json
from typing import Dict, List, Optional

import yaml

from . import output
from .config import Config
from .naming import KubeNames
from .probe import HealthStatus
from .utils import ConvergenceError, PrerequisiteError, require_tool, run_command, succeeded

CRASH_REASONS = ("CrashLoopBackOff", "Error", "ImagePullBackOff", "ErrImagePull")
MONITORING_NAMESPACE = "monitoring"


def check_prerequisites() -> None:
    """
    Ensure kubectl and helm are installed and a cluster is reachable.

    Raises:
        PrerequisiteError: If a tool is missing or the cluster is unreachable
    """
    output.info("Checking Kubernetes prerequisites...")
    output.info(f"kubectl found: {require_tool('kubectl', ['version', '--client'])}")
    output.info(f"Helm found: {require_tool('helm', ['version', '--short'])}")

    output.info("Checking Kubernetes cluster connectivity...")
    if not succeeded(["kubectl", "cluster-info"]):
        raise PrerequisiteError("Failed to connect to Kubernetes cluster. Check your kubectl configuration.")
    context = run_command(["kubectl", "config", "current-context"]).stdout.strip()
    output.info(f"Successfully connected to Kubernetes cluster: {context}")
    output.info("Kubernetes prerequisites met.")


def cluster_reachable() -> bool:
    return succeeded(["kubectl", "cluster-info"])


def get_json(args: List[str]) -> Optional[dict]:
    """Run ``kubectl <args> -o json``; None if the object is absent."""
    result = run_command(["kubectl", *args, "-o", "json"])
    if result.returncode != 0 or not result.stdout.strip():
        return None
    try:
        return json.loads(result.stdout)
    except ValueError:
        return None


def namespace_exists(namespace: str) -> bool:
    return succeeded(["kubectl", "get", "namespace", namespace])


def ensure_namespace(namespace: str) -> None:
    """
    Raises:
        ConvergenceError: If the namespace cannot be created
    """
    output.info(f"Checking if namespace '{namespace}' exists...")
    if namespace_exists(namespace):
        output.info(f"Namespace '{namespace}' already exists.")
        return
    output.info(f"Namespace '{namespace}' does not exist. Creating it...")
    result = run_command(["kubectl", "create", "namespace", namespace])
    if result.returncode != 0:
        raise ConvergenceError(
            f"Failed to create namespace '{namespace}'.",
            returncode=result.returncode,
            output=result.stderr,
        )
    output.info(f"Namespace '{namespace}' created.")


def helm_values(config: Config, names: KubeNames) -> Dict[str, str]:
    """``--set`` overrides passed to the chart."""
    return {
        "namespace": names.namespace,
        "replicaCount": str(config.replica_count),
        "jenkins.adminUser": config.k8s_admin_user,
        "jenkins.adminPassword": config.k8s_admin_password,
        "ingress.enabled": "true",
        "ingress.host": config.ingress_host,
        "persistence.enabled": "true",
        "persistence.storageClass": config.storage_class,
        "service.type": "ClusterIP",
        "nameOverride": config.name_override,
        "fullnameOverride": config.fullname_override,
    }


def helm_upgrade_install(config: Config, names: KubeNames) -> None:
    """
    Converge the release with ``helm upgrade --install --wait``.

    Raises:
        ConvergenceError: If helm exits non-zero; carries its output
    """
    output.info(
        f"Deploying Helm chart '{config.helm_chart_path}' with release name "
        f"'{names.release}' into namespace '{names.namespace}'..."
    )
    output.info(f"Using replicaCount={config.replica_count}. For HA, set K8S_REPLICA_COUNT to 2 or more.")
    cmd = [
        "helm", "upgrade", "--install", names.release, str(config.helm_chart_path),
        "--namespace", names.namespace,
    ]
    for key, value in helm_values(config, names).items():
        # --set-string keeps passwords like "123" from turning into numbers
        flag = "--set-string" if key in ("jenkins.adminPassword", "jenkins.adminUser") else "--set"
        cmd.extend([flag, f"{key}={value}"])
    cmd.extend(["--wait", "--timeout", config.helm_timeout])

    result = run_command(cmd)
    if result.returncode != 0:
        raise ConvergenceError(
            "Helm deployment failed. Check Helm output for details.",
            returncode=result.returncode,
            output=(result.stdout or "") + (result.stderr or ""),
        )
    output.info(f"Helm deployment of '{names.release}' completed.")


def release_exists(names: KubeNames) -> bool:
    return succeeded(["helm", "status", names.release, "--namespace", names.namespace])


def helm_uninstall(names: KubeNames) -> bool:
    return succeeded(["helm", "uninstall", names.release, "--namespace", names.namespace])


def manifest_names(names: KubeNames) -> Dict[str, List[str]]:
    """
    Object names by kind, read from the release's rendered manifest.

    This is what the chart actually produced, as opposed to the naming
    convention in ``naming.helm_fullname``.
    """
    result = run_command(["helm", "get", "manifest", names.release, "--namespace", names.namespace])
    if result.returncode != 0:
        return {}
    found: Dict[str, List[str]] = {}
    try:
        documents = list(yaml.safe_load_all(result.stdout))
    except yaml.YAMLError:
        return {}
    for document in documents:
        if not isinstance(document, dict):
            continue
        name = (document.get("metadata") or {}).get("name")
        if document.get("kind") and name:
            found.setdefault(document["kind"], []).append(name)
    return found


def resolve_object_name(names: KubeNames, kind: str, manifest: Optional[Dict[str, List[str]]] = None) -> Optional[str]:
    """
    Find the name of the chart's ``kind`` object.

    The rendered manifest is authoritative. Without it, naming-convention
    guesses are tried against the cluster and a warning flags the guess.
    """
    manifest = manifest_names(names) if manifest is None else manifest
    if manifest.get(kind):
        return manifest[kind][0]

    candidates = names.object_name_candidates()
    output.warn(
        f"Could not read {kind} name from 'helm get manifest'; guessing from naming "
        f"convention ({', '.join(candidates)})."
    )
    for candidate in candidates:
        if succeeded(["kubectl", "get", kind.lower(), candidate, "-n", names.namespace]):
            if candidate != candidates[0]:
                output.warn(f"{kind} found under fallback name '{candidate}'.")
            return candidate
    return None


def rollout_status(namespace: str, statefulset: str, timeout_seconds: int) -> bool:
    return succeeded([
        "kubectl", "rollout", "status", f"statefulset/{statefulset}",
        "-n", namespace, f"--timeout={timeout_seconds}s",
    ])


def pod_names(names: KubeNames) -> List[str]:
    data = get_json(["get", "pods", "-n", names.namespace, "-l", names.pod_selector])
    if not data:
        return []
    return [item["metadata"]["name"] for item in data.get("items", [])]


def pod_health(namespace: str, pod: str) -> HealthStatus:
    """Map a pod's phase, container states and Ready condition onto a HealthStatus."""
    data = get_json(["get", "pod", pod, "-n", namespace])
    if data is None:
        return HealthStatus.MISSING
    status = data.get("status", {})
    if status.get("phase") in ("Failed", "Succeeded"):
        return HealthStatus.EXITED
    for container in status.get("containerStatuses", []):
        state = container.get("state", {})
        reason = (state.get("waiting") or {}).get("reason", "")
        if "terminated" in state or reason in CRASH_REASONS:
            return HealthStatus.EXITED
    for condition in status.get("conditions", []):
        if condition.get("type") == "Ready" and condition.get("status") == "True":
            return HealthStatus.HEALTHY
    return HealthStatus.STARTING


def describe(kind: str, name: str, namespace: str) -> str:
    result = run_command(["kubectl", "describe", kind, name, "-n", namespace])
    return result.stdout or result.stderr


def pod_logs(namespace: str, pod: str, tail: int) -> str:
    result = run_command(["kubectl", "logs", f"--tail={tail}", pod, "-n", namespace, "--all-containers"])
    return (result.stdout or "") + (result.stderr or "")


def release_logs(names: KubeNames, tail: int) -> str:
    result = run_command([
        "kubectl", "logs", f"--tail={tail}", "-n", names.namespace,
        "-l", names.instance_selector, "--all-containers",
    ])
    return (result.stdout or "") + (result.stderr or "")


def pvc_names(names: KubeNames) -> List[str]:
    data = get_json(["get", "pvc", "-n", names.namespace, "-l", names.instance_selector])
    if not data:
        return []
    return [item["metadata"]["name"] for item in data.get("items", [])]


def delete_pvcs(namespace: str, pvcs: List[str]) -> bool:
    return succeeded(["kubectl", "delete", "pvc", "-n", namespace, *pvcs, "--wait=true"])


def delete_namespace(namespace: str) -> bool:
    return succeeded(["kubectl", "delete", "namespace", namespace, "--wait=true"])


def is_demo_namespace(namespace: str) -> bool:
    """Only namespaces named like demos are ever offered for deletion."""
    return namespace.endswith("-demo")


def servicemonitor_namespace(names: KubeNames) -> Optional[str]:
    """Namespace holding the release's ServiceMonitor, if any."""
    for namespace in (names.namespace, MONITORING_NAMESPACE):
        data = get_json(["get", "servicemonitor", "-n", namespace, "-l", names.instance_selector])
        if data and data.get("items"):
            return namespace
    return None


def _ingress_url(ingress: dict, host: str) -> str:
    tls_hosts = [h for entry in ingress.get("spec", {}).get("tls", []) or [] for h in entry.get("hosts", [])]
    scheme = "https" if host in tls_hosts else "http"
    return f"{scheme}://{host}"


def _http_port(service: dict, key: str) -> Optional[int]:
    for port in service.get("spec", {}).get("ports", []):
        if port.get("name") == "http":
            return port.get(key)
    return None


def discover_access_url(config: Config, names: KubeNames, object_name: Optional[str] = None) -> Optional[str]:
    """
    Work out how to reach Jenkins from outside the cluster.

    Tries, in order: the chart's Ingress by name, any Ingress carrying the
    release label, a LoadBalancer address, a NodePort.
    """
    output.info("Determining Jenkins access URL...")
    object_name = object_name or names.fullname
    namespace = names.namespace

    ingress = get_json(["get", "ingress", object_name, "-n", namespace])
    if ingress is not None:
        url = _ingress_url(ingress, config.ingress_host)
        output.info(f"Jenkins Ingress found: {url}")
        output.info(f"Ensure '{config.ingress_host}' resolves to your Ingress controller's IP.")
        return url

    output.warn(f"Ingress '{object_name}' not found. Trying to find Ingress by labels...")
    listing = get_json(["get", "ingress", "-n", namespace, "-l", names.instance_selector])
    for item in (listing or {}).get("items", []):
        rules = item.get("spec", {}).get("rules", [])
        if rules and rules[0].get("host"):
            url = _ingress_url(item, rules[0]["host"])
            output.info(f"Jenkins Ingress (found by label): {url}")
            return url

    output.warn("No Ingress found for Jenkins. Checking for LoadBalancer or NodePort service...")
    service = get_json(["get", "service", object_name, "-n", namespace])
    if service is not None:
        lb = (service.get("status", {}).get("loadBalancer", {}).get("ingress") or [{}])[0]
        address = lb.get("ip") or lb.get("hostname")
        port = _http_port(service, "port")
        if address and port:
            url = f"http://{address}:{port}"
            output.info(f"Jenkins accessible via LoadBalancer: {url}")
            return url
        output.warn("No LoadBalancer service found for Jenkins.")

        node_port = _http_port(service, "nodePort")
        if node_port:
            nodes = get_json(["get", "nodes"]) or {}
            node_ip = "<ANY_NODE_IP>"
            for item in nodes.get("items", [])[:1]:
                for address in item.get("status", {}).get("addresses", []):
                    if address.get("type") == "InternalIP":
                        node_ip = address["address"]
            url = f"http://{node_ip}:{node_port}"
            output.info(f"Jenkins accessible via NodePort: {url}")
            return url
        output.warn("No NodePort service found for Jenkins.")

    output.error("Could not determine Jenkins access URL. Manual check required.")
    output.info(
        f"Try 'kubectl port-forward svc/{object_name} 8080:8080 -n {namespace}' "
        "and access Jenkins at http://localhost:8080"
    )
    return None
