"""collectorstack command-line interface.

Commands:
    plan           -- synthesis order, edges and reachability rules.
    deploy         -- synthesize through the dry-run or a custom provisioner.
    teardown-plan  -- order in which resources would be deleted.
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any

import click

from collectorstack.app import CollectorStackApp, create_app, load_provisioner
from collectorstack.config import load_config
from collectorstack.errors import CollectorStackError, SynthesisError
from collectorstack.models.config import CollectorStackConfig, RegistrySource
from collectorstack.synth.dry_run import DryRunProvisioner
from collectorstack.topology.builder import Topology


def _topology_options(func: Any) -> Any:
    func = click.option(
        "--registry-source",
        type=click.Choice([s.value for s in RegistrySource]),
        default=None,
        help="Pull the collector image from the public registry or through the cache.",
    )(func)
    func = click.option(
        "--debug-instance/--no-debug-instance",
        default=None,
        help="Include a debug instance that can reach the load balancer.",
    )(func)
    func = click.option(
        "--function/--no-function",
        "include_function",
        default=None,
        help="Include the instrumented function.",
    )(func)
    return func


def _apply_overrides(
    config: CollectorStackConfig,
    registry_source: str | None,
    debug_instance: bool | None,
    include_function: bool | None,
    max_workers: int | None = None,
) -> CollectorStackConfig:
    topology = config.topology
    if registry_source is not None:
        topology = dataclasses.replace(topology, registry_source=RegistrySource(registry_source))
    if debug_instance is not None:
        topology = dataclasses.replace(topology, include_debug_instance=debug_instance)
    if include_function is not None:
        topology = dataclasses.replace(topology, include_function=include_function)
    synthesis = config.synthesis
    if max_workers is not None:
        synthesis = dataclasses.replace(synthesis, max_workers=max_workers)
    return dataclasses.replace(config, topology=topology, synthesis=synthesis)


def _plan_document(topology: Topology) -> dict[str, Any]:
    graph = topology.graph
    return {
        "order": [
            {"id": node_id, "kind": graph.node(node_id).kind.value, "depends_on": graph.dependencies(node_id)}
            for node_id in topology.topological_order()
        ],
        "edges": [
            {"from": e.from_id, "to": e.to_id, "type": e.edge_type.value} for e in topology.edges
        ],
        "reachability": [
            {
                "source": r.source_node_id,
                "target": r.target_node_id,
                "port": r.port,
                "protocol": r.protocol.value,
                "description": r.description,
            }
            for r in topology.rules
        ],
    }


@click.group()
@click.option("--log-level", type=click.Choice(["debug", "info", "warning", "error"]), default=None)
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """Provision the OpenTelemetry collector pipeline."""
    try:
        config = load_config()
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc
    if log_level is not None:
        config = dataclasses.replace(config, log=dataclasses.replace(config.log, level=log_level))
    ctx.obj = config


@cli.command()
@_topology_options
@click.option("--json", "as_json", is_flag=True, help="Emit the plan as JSON.")
@click.pass_obj
def plan(
    config: CollectorStackConfig,
    registry_source: str | None,
    debug_instance: bool | None,
    include_function: bool | None,
    as_json: bool,
) -> None:
    """Show synthesis order and derived reachability rules."""
    config = _apply_overrides(config, registry_source, debug_instance, include_function)
    app = create_app(config)
    try:
        topology = app.plan()
    except CollectorStackError as exc:
        raise click.ClickException(str(exc)) from exc

    document = _plan_document(topology)
    if as_json:
        click.echo(json.dumps(document, indent=2))
        return
    click.echo("Synthesis order:")
    for position, entry in enumerate(document["order"], start=1):
        deps = ", ".join(entry["depends_on"]) or "-"
        click.echo(f"  {position:2d}. {entry['id']} [{entry['kind']}] <- {deps}")
    click.echo("Reachability rules:")
    for rule in document["reachability"]:
        click.echo(f"  {rule['source']} -> {rule['target']} {rule['protocol']}/{rule['port']}")


@cli.command()
@_topology_options
@click.option("--provisioner", "provisioner_path", default=None, help="Provisioner factory as module:attribute.")
@click.option("--max-workers", type=click.IntRange(1, 32), default=None)
@click.option("--fail-on", multiple=True, help="Dry run only: simulate a failure for this node id.")
@click.pass_obj
def deploy(
    config: CollectorStackConfig,
    registry_source: str | None,
    debug_instance: bool | None,
    include_function: bool | None,
    provisioner_path: str | None,
    max_workers: int | None,
    fail_on: tuple[str, ...],
) -> None:
    """Synthesize the topology and print the produced endpoint."""
    config = _apply_overrides(config, registry_source, debug_instance, include_function, max_workers)
    if provisioner_path is not None:
        try:
            provisioner = load_provisioner(provisioner_path)
        except (ImportError, AttributeError, ValueError) as exc:
            raise click.ClickException(f"Cannot load provisioner: {exc}") from exc
    else:
        provisioner = DryRunProvisioner(fail_on=fail_on)

    app: CollectorStackApp = create_app(config, provisioner=provisioner)
    try:
        outcome = app.deploy()
    except SynthesisError as exc:
        click.echo(f"Synthesis failed at {exc.node_id}: {exc}", err=True)
        if exc.synthesized:
            click.echo(f"  provisioned: {', '.join(exc.synthesized)}", err=True)
        if exc.partial:
            click.echo(f"  incomplete: {', '.join(exc.partial)}", err=True)
        if exc.downstream:
            click.echo(f"  skipped downstream: {', '.join(exc.downstream)}", err=True)
        raise SystemExit(1) from exc
    except CollectorStackError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"endpoint: {outcome.endpoint}")
    if outcome.debug_instance_id:
        click.echo(f"debug instance: {outcome.debug_instance_id}")


@cli.command("teardown-plan")
@_topology_options
@click.pass_obj
def teardown_plan(
    config: CollectorStackConfig,
    registry_source: str | None,
    debug_instance: bool | None,
    include_function: bool | None,
) -> None:
    """Show the order resources are deleted in."""
    config = _apply_overrides(config, registry_source, debug_instance, include_function)
    app = create_app(config)
    try:
        topology = app.plan()
    except CollectorStackError as exc:
        raise click.ClickException(str(exc)) from exc
    for position, node_id in enumerate(topology.teardown_order(), start=1):
        click.echo(f"  {position:2d}. {node_id}")
