"""Leveled, colored console output."""

import click


def info(message: str) -> None:
    """Print an informational line."""
    click.secho(f"[INFO] {message}", fg="green")


def warn(message: str) -> None:
    """Print a warning line."""
    click.secho(f"[WARN] {message}", fg="yellow")


def error(message: str) -> None:
    """Print an error line to stderr."""
    click.secho(f"[ERROR] {message}", fg="red", err=True)


def passed(message: str) -> None:
    click.secho(f"PASS: {message}", fg="green")


def failed(message: str) -> None:
    click.secho(f"FAIL: {message}", fg="red")


def field(label: str, value: str) -> None:
    """Print a highlighted ``label: value`` line for access summaries."""
    click.echo(f"{click.style(label + ':', fg='yellow')} {value}")


def block(text: str) -> None:
    """Print captured diagnostic output verbatim."""
    if text:
        click.echo(text.rstrip("\n"))
