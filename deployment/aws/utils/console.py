"""Colored status lines for interactive deployment runs."""
import logging

import click

logger = logging.getLogger("deployment.console")


def print_status(message: str) -> None:
    logger.debug(message)
    click.secho("[INFO]", fg="green", nl=False)
    click.echo(f" {message}")


def print_warning(message: str) -> None:
    logger.debug(message)
    click.secho("[WARNING]", fg="yellow", bold=True, nl=False)
    click.echo(f" {message}")


def print_error(message: str) -> None:
    logger.debug(message)
    click.secho("[ERROR]", fg="red", nl=False, err=True)
    click.echo(f" {message}", err=True)


def print_section(title: str, lines) -> None:
    """Print a titled block of indented lines followed by a blank line."""
    click.echo(title)
    for line in lines:
        click.echo(f"  {line}")
    click.echo("")
