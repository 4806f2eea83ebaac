"""Jenkins HA Tools - deploy, validate and reset the Jenkins HA demo environments."""

__version__ = "0.1.0"

from . import compose, config, demo, jenkins, kube, materialize, naming, probe, reset, utils, validate

__all__ = [
    "compose", "config", "demo", "jenkins", "kube", "materialize",
    "naming", "probe", "reset", "utils", "validate",
]
