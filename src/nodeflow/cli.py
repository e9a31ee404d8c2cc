#!/usr/bin/env python3
"""
Command line interface for nodeflow.

Usage:
    nodeflow run flow.yaml
    nodeflow run flow.yaml --set in=hello --api-keys @keys.json --stream
    nodeflow validate flow.yaml --detailed
    nodeflow inspect flow.yaml --format mermaid
    nodeflow --version
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer

from nodeflow import __version__
from nodeflow.config import EngineConfig, ExecuteOptions
from nodeflow.exceptions import ExecutionCancelledError, FlowConfigurationError, FlowDocumentError
from nodeflow.graph import find_roots, to_mermaid
from nodeflow.loader import Flow, load_flow
from nodeflow.models import NodeExecutionState
from nodeflow.orchestrator import FlowOrchestrator

app = typer.Typer(
    name="nodeflow",
    help="nodeflow - run node/edge flow graphs",
    no_args_is_help=True,
    add_completion=False,
)


class OutputFormat(str, Enum):
    """Output format for inspect command."""
    text = "text"
    json = "json"
    mermaid = "mermaid"


def parse_json_option(value: Optional[str], option: str) -> Dict[str, Any]:
    """
    Parse a JSON object given inline or as @file.json.

    Raises:
        typer.Exit: On parse error
    """
    if value is None:
        return {}

    if value.startswith("@"):
        path = Path(value[1:])
        if not path.exists():
            typer.echo(f"Error: File not found for {option}: {path}", err=True)
            raise typer.Exit(1)
        text = path.read_text()
    else:
        text = value

    try:
        result = json.loads(text)
    except json.JSONDecodeError as e:
        typer.echo(f"Error: Invalid JSON in {option}: {e}", err=True)
        raise typer.Exit(1)
    if not isinstance(result, dict):
        typer.echo(f"Error: {option} must be a JSON object, got {type(result).__name__}", err=True)
        raise typer.Exit(1)
    return result


def parse_overrides(values: Optional[List[str]]) -> Dict[str, str]:
    """Parse repeated NODE_ID=VALUE options."""
    overrides = {}
    for item in values or []:
        node_id, sep, value = item.partition("=")
        if not sep or not node_id:
            typer.echo(f"Error: Expected NODE_ID=VALUE, got '{item}'", err=True)
            raise typer.Exit(1)
        overrides[node_id] = value
    return overrides


def setup_logging(verbose: int, quiet: bool):
    """Configure logging based on verbosity flags."""
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose >= 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s"
    )


def emit_ndjson_event(event_type: str, **kwargs):
    """Emit an NDJSON event to stdout."""
    event = {
        "type": event_type,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        **kwargs
    }
    print(json.dumps(event, default=str), flush=True)


def _load(file: str) -> Flow:
    try:
        return load_flow(file)
    except FlowDocumentError as e:
        typer.echo(f"Error: {e}", err=True)
        for message in e.errors:
            typer.echo(f"  - {message}", err=True)
        raise typer.Exit(1)


@app.command()
def run(
    file: str = typer.Argument(..., help="Path or URI of the flow document (YAML or JSON)"),
    overrides: Optional[List[str]] = typer.Option(None, "--set", help="Override a text-input value: NODE_ID=VALUE"),
    api_keys: Optional[str] = typer.Option(None, "--api-keys", help="Provider API keys as JSON or @file.json"),
    share_token: Optional[str] = typer.Option(None, "--share-token", help="Owner-funded execution token"),
    backend_url: Optional[str] = typer.Option(None, "--backend-url", help="Base URL of the execute endpoint"),
    stream: bool = typer.Option(False, "--stream", "-s", help="Output state changes as NDJSON"),
    verbose: int = typer.Option(0, "--verbose", "-v", count=True, help="Increase verbosity"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only show errors"),
):
    """Execute a flow."""
    setup_logging(verbose, quiet)
    flow = _load(file)

    config = EngineConfig.from_env(base=flow.config())
    if backend_url:
        config = config.with_overrides({"backend": {"url": backend_url}})
    options = ExecuteOptions(
        api_keys=parse_json_option(api_keys, "--api-keys"),
        share_token=share_token,
        input_overrides=parse_overrides(overrides),
    )

    def on_state_change(node_id: str, state: NodeExecutionState) -> None:
        if stream:
            emit_ndjson_event("state", node=node_id, **state.to_dict())

    orchestrator = FlowOrchestrator(config=config)
    try:
        result = asyncio.run(
            orchestrator.run_detailed(flow.nodes, flow.edges, on_state_change, options)
        )
    except FlowConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except ExecutionCancelledError as e:
        typer.echo(f"{e}", err=True)
        raise typer.Exit(130)

    if stream:
        emit_ndjson_event("complete", output=result.output, outputs=result.outputs, errors=result.errors)
    elif len(result.outputs) > 1:
        for label, output in result.outputs.items():
            typer.echo(f"[{label}] {output}")
    else:
        typer.echo(result.output)

    if result.errors:
        for label, message in result.errors.items():
            typer.echo(f"Error in {label}: {message}", err=True)
        raise typer.Exit(1)


@app.command()
def validate(
    file: str = typer.Argument(..., help="Path or URI of the flow document"),
    detailed: bool = typer.Option(False, "--detailed", help="Show detailed validation info"),
):
    """Validate a flow document without executing it."""
    flow = _load(file)
    config = flow.config()

    if detailed:
        typer.echo(f"Flow: {flow.name}")
        if flow.description:
            typer.echo(f"Description: {flow.description}")
        typer.echo(f"\nNodes: {len(flow.nodes)}")
        for node in flow.nodes:
            typer.echo(f"  - {node.id} ({node.type})")
        typer.echo(f"\nEdges: {len(flow.edges)}")
        for edge in flow.edges:
            handle = f" [{edge.source_handle or 'output'} -> {edge.target_handle or config.default_target_handle}]"
            typer.echo(f"  - {edge.source} -> {edge.target}{handle}")

    roots = find_roots(
        flow.nodes,
        flow.edges,
        sink_types=config.sink_types,
        include_disconnected_sinks=config.execute_disconnected_sinks,
    )
    if not roots:
        typer.echo("\nValidation failed: No connected nodes found to execute", err=True)
        raise typer.Exit(1)

    typer.echo(f"\n✓ {file} is valid")


@app.command()
def inspect(
    file: str = typer.Argument(..., help="Path or URI of the flow document"),
    format: OutputFormat = typer.Option(OutputFormat.text, "--format", "-f", help="Output format (text, json, mermaid)"),
):
    """Inspect flow structure."""
    flow = _load(file)
    config = flow.config()

    if format == OutputFormat.json:
        print(json.dumps(flow.to_dict(), indent=2))
    elif format == OutputFormat.mermaid:
        print(to_mermaid(flow.nodes, flow.edges, sink_types=config.sink_types))
    else:
        roots = {
            n.id
            for n in find_roots(
                flow.nodes,
                flow.edges,
                sink_types=config.sink_types,
                include_disconnected_sinks=config.execute_disconnected_sinks,
            )
        }
        typer.echo(f"Flow: {flow.name}")
        for node in flow.nodes:
            marker = " (root)" if node.id in roots else ""
            typer.echo(f"  {node.id}: {node.type}{marker}")
            for edge in flow.edges:
                if edge.source == node.id:
                    typer.echo(f"    -> {edge.target} [{edge.target_handle or config.default_target_handle}]")


def version_callback(value: bool):
    """Handle --version flag."""
    if value:
        typer.echo(f"nodeflow {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(None, "--version", callback=version_callback, is_eager=True,
                                 help="Show version and exit"),
):
    """nodeflow - run node/edge flow graphs."""


def main():
    """Entry point for the nodeflow CLI."""
    app()


if __name__ == "__main__":
    main()
