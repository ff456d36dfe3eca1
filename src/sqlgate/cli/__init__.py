"""CLI entry point for `sqlgate`."""

from __future__ import annotations

import logging

import click

from sqlgate.cli.check import check
from sqlgate.cli.connect import connect
from sqlgate.cli.introspect import introspect
from sqlgate.cli.query import query


@click.group()
@click.version_option(package_name="sqlgate")
@click.option("-v", "--verbose", is_flag=True, help="Log gate and adapter activity to stderr.")
def main(verbose: bool) -> None:
    """sqlgate: least-privilege SQL execution for autonomous agents."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


main.add_command(check)
main.add_command(connect)
main.add_command(introspect)
main.add_command(query)
