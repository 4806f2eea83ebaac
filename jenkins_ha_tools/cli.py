"""Command-line interface for the Jenkins HA demo tools."""

import sys

import click

from . import config, demo, kube, output, reset as reset_mod, validate as validate_mod
from .naming import docker_names, kube_names
from .utils import DemoError


class AliasedGroup(click.Group):
    """A Click Group that supports command aliases."""

    def get_command(self, ctx, cmd_name):
        rv = click.Group.get_command(self, ctx, cmd_name)
        if rv is not None:
            return rv
        # Check if cmd_name is an alias for any command
        for cmd in self.commands.values():
            if cmd_name in getattr(cmd, "aliases", ()):
                return cmd
        return None

    def format_commands(self, ctx, formatter):
        """List commands with their aliases."""
        rows = []
        for subcommand in self.list_commands(ctx):
            cmd = self.get_command(ctx, subcommand)
            if cmd is None or cmd.hidden:
                continue
            aliases = getattr(cmd, "aliases", ())
            name = f"{subcommand} ({', '.join(aliases)})" if aliases else subcommand
            rows.append((name, cmd))

        if rows:
            limit = formatter.width - 6 - max(len(name) for name, _ in rows)
            with formatter.section("Commands"):
                formatter.write_dl([(name, cmd.get_short_help_str(limit)) for name, cmd in rows])


def make_confirm(assume_yes: bool) -> reset_mod.Confirm:
    """Interactive yes/no prompt defaulting to no; ``assume_yes`` answers yes to all."""
    def confirm(question: str) -> bool:
        if assume_yes:
            output.info(f"{question} yes")
            return True
        try:
            return click.confirm(question, default=False)
        except click.Abort:
            return False
    return confirm


def _run(func, *args, **kwargs):
    """Call ``func``, turning demo errors and interrupts into exit codes."""
    try:
        return func(*args, **kwargs)
    except (DemoError, ValueError) as e:
        output.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        output.error("Interrupted.")
        sys.exit(130)


@click.group(cls=AliasedGroup)
@click.option("--env-file", type=click.Path(exists=True, dir_okay=False), help="Path to .env file")
@click.option(
    "--root",
    type=click.Path(exists=True, file_okay=False),
    help="Deployment repository root (default: $DEPLOY_ROOT or the current directory)",
)
@click.pass_context
def cli(ctx, env_file, root):
    """Jenkins HA demo - deploy, validate and reset the demo environments."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config.get_config(env_file, root)


@cli.command("docker")
@click.pass_context
def docker_up(ctx):
    """Deploy the Docker Compose demo (Jenkins HA + monitoring)."""
    _run(demo.run_docker_demo, ctx.obj["config"])


docker_up.aliases = ["compose"]


@cli.command("k8s")
@click.option("--yes", "-y", is_flag=True, help="Clean up existing resources without asking")
@click.pass_context
def k8s_up(ctx, yes):
    """Deploy the Kubernetes demo with Helm."""
    _run(demo.run_k8s_demo, ctx.obj["config"], make_confirm(yes))


k8s_up.aliases = ["kube"]


@cli.command("reset")
@click.option("--docker/--no-docker", default=None, help="Reset the Docker demo (asks when omitted)")
@click.option("--k8s/--no-k8s", default=None, help="Reset the Kubernetes demo (asks when omitted)")
@click.option("--prune", is_flag=True, help="Offer 'docker system prune' at the end of the Docker reset")
@click.option("--yes", "-y", is_flag=True, help="Answer yes to every question")
@click.pass_context
def reset(ctx, docker, k8s, prune, yes):
    """Tear down the demo environments."""
    reports = _run(reset_mod.reset, ctx.obj["config"], make_confirm(yes), docker=docker, k8s=k8s, prune=prune)
    if any(report.failed for report in reports):
        output.warn("Some reset steps failed. Please review the messages above.")


reset.aliases = ["down"]


@cli.group(name="validate", cls=AliasedGroup)
def validate():
    """Re-run post-deployment validation against a running demo."""
    pass


@validate.command("docker")
@click.pass_context
def validate_docker(ctx):
    """Validate the Docker Compose demo."""
    report = _run(validate_mod.validate_docker, ctx.obj["config"])
    sys.exit(0 if report.all_passed else 1)


def _validate_k8s_release(cfg):
    names = kube_names(cfg)
    access_url = kube.discover_access_url(cfg, names, kube.resolve_object_name(names, "Ingress"))
    return validate_mod.validate_k8s(cfg, names, access_url)


@validate.command("k8s")
@click.pass_context
def validate_k8s(ctx):
    """Validate the Kubernetes demo."""
    report = _run(_validate_k8s_release, ctx.obj["config"])
    sys.exit(0 if report.all_passed else 1)


@cli.command("names")
@click.pass_context
def show_names(ctx):
    """Show the resource names the tools will target."""
    cfg = ctx.obj["config"]
    dn = _run(docker_names, cfg)
    kn = kube_names(cfg)
    output.field("Jenkins compose project", dn.jenkins_project)
    output.field("Jenkins network", dn.jenkins_network)
    output.field("Monitoring compose project", dn.monitoring_project)
    output.field("Namespace", kn.namespace)
    output.field("Helm release", kn.release)
    output.field("Chart fullname", kn.fullname)
    output.field("Pod selector", kn.pod_selector)


if __name__ == "__main__":
    cli()
