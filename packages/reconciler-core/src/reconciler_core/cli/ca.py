"""Certificate authority CLI commands.

- show: Display the generations and expiry of a cluster's CAs
"""

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from reconciler_core.ca.secrets import SECRET_KIND, ca_from_secrets, cert_secret_name, key_secret_name
from reconciler_core.ca.types import CLIENTS_CA, CLUSTER_CA, CaSettings
from reconciler_core.config import OperatorSettings
from reconciler_core.store import create_store

ca_app = typer.Typer(help="Inspect cluster certificate authorities")


@ca_app.command("show")
def show_cas(
    cluster: str = typer.Option(..., "--cluster", "-c", help="Name of the custom resource"),
    namespace: str = typer.Option(
        None, "--namespace", "-n", envvar="RECONCILER_NAMESPACE", help="Namespace of the cluster"
    ),
) -> None:
    """Show CA generations and certificate expiry."""
    settings = OperatorSettings(**({"namespace": namespace} if namespace else {}))

    async def _show() -> None:
        store = create_store(settings)
        ns = settings.namespace

        table = Table(title=f"Certificate authorities of {ns}/{cluster}")
        table.add_column("CA", style="cyan")
        table.add_column("Cert generation", justify="right")
        table.add_column("Key generation", justify="right")
        table.add_column("Not after")
        table.add_column("Trusted old certs", justify="right")

        for ca_name in (CLUSTER_CA, CLIENTS_CA):
            cert_secret = await store.get(SECRET_KIND, ns, cert_secret_name(cluster, ca_name))
            key_secret = await store.get(SECRET_KIND, ns, key_secret_name(cluster, ca_name))
            ca = ca_from_secrets(CaSettings(name=ca_name), cert_secret, key_secret)
            if ca is None:
                table.add_row(ca_name, "-", "-", "[red]missing[/red]", "-")
                continue
            not_after = ca.not_after.strftime("%Y-%m-%d %H:%M:%S") if ca.certificate else "-"
            table.add_row(
                ca_name,
                str(ca.cert_generation),
                str(ca.key_generation),
                not_after,
                str(len(ca.trusted_certificates)),
            )

        Console().print(table)

    asyncio.run(_show())
