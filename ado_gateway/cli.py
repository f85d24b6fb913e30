"""Command line entry point.

Usage:
    ado-gateway myorg                          # all domains on 127.0.0.1:8080
    ado-gateway myorg -d core -d work-items    # only core and work items
    ado-gateway myorg --domains builds,repositories --port 9000
"""

from __future__ import annotations

import logging
from typing import Sequence

import click
import uvicorn

from .config import settings
from .domain_selection import DomainSelection, DomainsInput, available_domains
from .main import create_app


def _domains_input(values: Sequence[str]) -> DomainsInput:
    if not values:
        return settings.ado_domains
    return [token for value in values for token in value.split(",")]


@click.command()
@click.argument("organization")
@click.option("-p", "--port", default=8080, show_default=True, help="HTTP server port.")
@click.option("--host", default="127.0.0.1", show_default=True, help="Host to bind to.")
@click.option(
    "-d",
    "--domains",
    multiple=True,
    help=(
        "Domain(s) to enable: 'all' for everything, or specific domains "
        f"({', '.join(available_domains())}). Repeat the flag or pass a "
        "comma separated list. Defaults to ADO_DOMAINS or 'all'."
    ),
)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Override LOG_LEVEL.",
)
def main(
    organization: str,
    port: int,
    host: str,
    domains: tuple[str, ...],
    log_level: str | None,
) -> None:
    """Serve the Azure DevOps REST gateway for ORGANIZATION."""
    settings.ado_organization = organization.strip().strip("/")
    if log_level:
        settings.log_level = log_level.upper()
        logging.getLogger().setLevel(settings.log_level)

    selection = DomainSelection.from_input(_domains_input(domains))
    for token in selection.rejected:
        click.echo(f"Warning: ignoring unknown domain '{token}'", err=True)

    app = create_app(selection)

    click.echo(f"Azure DevOps gateway for '{settings.ado_organization}'")
    click.echo(f"   URL: http://{host}:{port}")
    click.echo(f"   Domains: {', '.join(selection.enabled_domains())}")

    uvicorn.run(app, host=host, port=port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
