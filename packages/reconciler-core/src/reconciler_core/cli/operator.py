"""Operator CLI commands.

This module provides the CLI commands for running the reconciler:
- run: Start the periodic ClusterOperator loop
- once: Reconcile a single cluster and print the resulting status

Options fall back to the RECONCILER_* environment variables read by
OperatorSettings.
"""

import asyncio
import json
import logging

import typer
from rich.console import Console

from reconciler_core.cli.cluster_factory import AVAILABLE_KINDS, create_reconciler
from reconciler_core.config import OperatorSettings
from reconciler_core.loop import ClusterOperator
from reconciler_core.reconcile.state import Reconciliation
from reconciler_core.retry import RetryConfig
from reconciler_core.store import create_store

logger = logging.getLogger(__name__)

operator_app = typer.Typer(help="Run the cluster reconciler")

KIND_OPTION = typer.Option(
    "kafka", "--kind", "-k", help=f"Custom resource kind ({', '.join(AVAILABLE_KINDS)})"
)
NAMESPACE_OPTION = typer.Option(
    None, "--namespace", "-n", envvar="RECONCILER_NAMESPACE", help="Watched namespace"
)
API_URL_OPTION = typer.Option(
    None, "--api", envvar="RECONCILER_KUBE_API_URL", help="Kubernetes API URL"
)


def _settings(**overrides: object) -> OperatorSettings:
    return OperatorSettings(**{k: v for k, v in overrides.items() if v is not None})


@operator_app.command("run")
def run_operator(
    kind: str = KIND_OPTION,
    namespace: str = NAMESPACE_OPTION,
    api_url: str = API_URL_OPTION,
    interval: float = typer.Option(
        None,
        "--interval",
        "-i",
        envvar="RECONCILER_RECONCILIATION_INTERVAL_SECONDS",
        help="Resync interval in seconds",
    ),
    workers: int = typer.Option(
        None, "--workers", "-w", envvar="RECONCILER_MAX_WORKERS", help="Concurrent reconciliations"
    ),
) -> None:
    """
    Run the operator loop.

    Reconciles every resource of the kind at the configured interval and
    retries transient failures. Runs until SIGINT or SIGTERM.
    """
    settings = _settings(
        namespace=namespace,
        kube_api_url=api_url,
        reconciliation_interval_seconds=interval,
        max_workers=workers,
    )
    print(f"Starting reconciler for kind: {kind}")
    print(f"  Namespace: {settings.namespace}")
    print(f"  API: {settings.kube_api_url}")
    print(f"  Interval: {settings.reconciliation_interval_seconds}s")
    print(f"  Workers: {settings.max_workers}")
    print()
    print("Press Ctrl+C to stop")
    print()

    async def _run() -> None:
        store = create_store(settings)
        try:
            reconciler = create_reconciler(kind, store, settings=settings)
        except ValueError as e:
            print(f"Error: {e}")
            raise typer.Exit(1)
        operator = ClusterOperator(
            store,
            reconciler,
            namespace=settings.namespace,
            interval_seconds=settings.reconciliation_interval_seconds,
            max_workers=settings.max_workers,
            retry=RetryConfig(
                max_attempts=settings.max_retry_attempts,
                min_wait_seconds=settings.retry_min_wait_seconds,
                max_wait_seconds=settings.retry_max_wait_seconds,
            ),
        )
        await operator.run()

    asyncio.run(_run())


@operator_app.command("once")
def reconcile_once(
    cluster: str = typer.Option(..., "--cluster", "-c", help="Name of the custom resource"),
    kind: str = KIND_OPTION,
    namespace: str = NAMESPACE_OPTION,
    api_url: str = API_URL_OPTION,
) -> None:
    """Reconcile one cluster and print the resulting status."""
    settings = _settings(namespace=namespace, kube_api_url=api_url)

    async def _once() -> bool:
        store = create_store(settings)
        try:
            reconciler = create_reconciler(kind, store, settings=settings)
        except ValueError as e:
            print(f"Error: {e}")
            raise typer.Exit(1)
        result = await reconciler.reconcile(
            Reconciliation("cli", reconciler.cluster.kind, settings.namespace, cluster)
        )
        console = Console()
        if result.status is None:
            console.print(f"[yellow]{cluster} not found in {settings.namespace}[/yellow]")
            return True
        console.print_json(json.dumps(result.status.to_dict()))
        return result.succeeded

    if not asyncio.run(_once()):
        raise typer.Exit(1)
