"""Typer CLI for inspecting what the provider sees."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from ..apis.objects import CapacityClass, NodeClaim
from ..apis.wellknown import MACHINE_ANNOTATION
from ..cloudprovider.provider import CloudProvider
from ..config.loader import dump_settings, load_settings
from ..config.schema import ProviderSettings
from ..controllers.status import CapacityClassStatusController
from ..core.exceptions import ProviderError
from ..core.logging import configure_logging, get_logger
from ..operator import build_cloud_provider

LOGGER = get_logger(__name__)

app = typer.Typer(help="Cluster API capacity provider CLI")

ConfigOption = typer.Option(None, "--config", "-c", help="Path to a YAML settings file")


def _settings(config: Optional[Path], overrides: Optional[List[str]] = None) -> ProviderSettings:
    try:
        settings = load_settings(config, overrides=overrides)
    except (FileNotFoundError, ValueError) as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    configure_logging(settings.logging.level, json_logs=settings.logging.json_logs)
    return settings


def _provider(config: Optional[Path]) -> CloudProvider:
    return build_cloud_provider(_settings(config))


def _claim_summary(claim: NodeClaim) -> Dict[str, Any]:
    return {
        "providerID": claim.status.provider_id,
        "machine": claim.metadata.annotations.get(MACHINE_ANNOTATION, ""),
        "labels": claim.metadata.labels,
        "capacity": {name: str(amount) for name, amount in sorted(claim.status.capacity.items())},
        "allocatable": {name: str(amount) for name, amount in sorted(claim.status.allocatable.items())},
    }


def _fail(exc: ProviderError) -> None:
    LOGGER.debug("Command failed", extra={"code": exc.code, "metadata": exc.metadata})
    typer.echo(f"error: {exc}", err=True)
    raise typer.Exit(code=1) from exc


@app.command()
def settings(
    config: Optional[Path] = ConfigOption,
    overrides: Optional[List[str]] = typer.Option(None, "--set", help="Override a setting as key=value"),
) -> None:
    """Print the resolved settings as YAML, with the token redacted."""

    typer.echo(dump_settings(_settings(config, overrides)), nl=False)


@app.command("instance-types")
def instance_types(node_class: str, config: Optional[Path] = ConfigOption) -> None:
    """List the instance types a NodeClass offers."""

    provider = _provider(config)
    try:
        capacity_class = provider.store.get(CapacityClass, node_class)
        found = provider.instance_types_for_class(capacity_class)
    except ProviderError as exc:
        _fail(exc)
        return
    typer.echo(json.dumps([it.to_dict() for it in found], indent=2))


@app.command()
def claims(config: Optional[Path] = ConfigOption) -> None:
    """List the claims backed by member Machines."""

    provider = _provider(config)
    try:
        found = provider.list()
    except ProviderError as exc:
        _fail(exc)
        return
    typer.echo(json.dumps([_claim_summary(claim) for claim in found], indent=2))


@app.command("reconcile-node-classes")
def reconcile_node_classes(config: Optional[Path] = ConfigOption) -> None:
    """Mark every NodeClass ready and report which ones need another pass."""

    provider = _provider(config)
    controller = CapacityClassStatusController(provider.store)
    try:
        node_classes = provider.store.list(CapacityClass)
        results = {node_class.name: controller.reconcile(node_class) for node_class in node_classes}
    except ProviderError as exc:
        _fail(exc)
        return
    typer.echo(json.dumps({name: {"requeue": result.requeue} for name, result in results.items()}, indent=2))


@app.command()
def get(provider_id: str, config: Optional[Path] = ConfigOption) -> None:
    """Show the claim for one provider ID."""

    provider = _provider(config)
    try:
        claim = provider.get(provider_id)
    except ProviderError as exc:
        _fail(exc)
        return
    typer.echo(json.dumps(_claim_summary(claim), indent=2))


def main() -> None:  # pragma: no cover - console entrypoint
    app()


if __name__ == "__main__":  # pragma: no cover
    main()
