"""
Flow document loading and validation.

A flow document is the editor's export of a graph, stored as YAML or JSON:

    name: summarize
    settings:
      execution:
        step_delay: 0
    nodes:
      - id: in
        type: text-input
        data: {inputValue: "Hello"}
      - id: gen
        type: text-generation
        data: {model: gpt-5.2}
      - id: out
        type: preview-output
    edges:
      - {id: e1, source: in, target: gen}
      - {id: e2, source: gen, target: out, targetHandle: string}

Documents are opened through fsspec, so local paths and remote URIs
(``s3://``, ``gs://``, ``https://`` with the matching fsspec backend
installed) load the same way.

Validation checks the document shape (JSON Schema, Draft 2020-12), unique
node ids and edge endpoints. Cycles are not checked.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import fsspec
import yaml
from jsonschema import Draft202012Validator

from .config import EngineConfig
from .exceptions import FlowDocumentError
from .models import Edge, Node

logger = logging.getLogger(__name__)

FLOW_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["nodes", "edges"],
    "properties": {
        "name": {"type": "string"},
        "description": {"type": "string"},
        "settings": {"type": "object"},
        "nodes": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "type"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "type": {"type": "string", "minLength": 1},
                    "data": {"type": "object"},
                },
            },
        },
        "edges": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["source", "target"],
                "properties": {
                    "id": {"type": "string"},
                    "source": {"type": "string"},
                    "target": {"type": "string"},
                    "sourceHandle": {"type": ["string", "null"]},
                    "targetHandle": {"type": ["string", "null"]},
                },
            },
        },
    },
}


@dataclass
class Flow:
    """A loaded flow document."""

    nodes: List[Node]
    edges: List[Edge]
    name: str = "flow"
    description: Optional[str] = None
    settings: Dict[str, Any] = field(default_factory=dict)

    def config(self) -> EngineConfig:
        return EngineConfig.from_yaml(self.settings)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"name": self.name}
        if self.description:
            result["description"] = self.description
        if self.settings:
            result["settings"] = self.settings
        result["nodes"] = [n.to_dict() for n in self.nodes]
        result["edges"] = [e.to_dict() for e in self.edges]
        return result


def validate_flow_document(doc: Any) -> List[str]:
    """
    Validate a parsed flow document.

    Returns:
        Validation messages; empty when the document is valid.
    """
    validator = Draft202012Validator(FLOW_SCHEMA)
    errors = []
    for error in sorted(validator.iter_errors(doc), key=lambda e: list(e.absolute_path)):
        location = "/".join(str(p) for p in error.absolute_path) or "<root>"
        errors.append(f"{location}: {error.message}")
    if errors:
        return errors

    node_ids = set()
    for node in doc["nodes"]:
        if node["id"] in node_ids:
            errors.append(f"Duplicate node id '{node['id']}'")
        node_ids.add(node["id"])
    for index, edge in enumerate(doc["edges"]):
        for end in ("source", "target"):
            if edge[end] not in node_ids:
                errors.append(f"edges/{index}: unknown {end} node '{edge[end]}'")
    return errors


def parse_flow(doc: Dict[str, Any]) -> Flow:
    """
    Build a Flow from a parsed document.

    Raises:
        FlowDocumentError: If the document is invalid
    """
    errors = validate_flow_document(doc)
    if errors:
        raise FlowDocumentError(f"Invalid flow document ({len(errors)} errors)", errors)
    return Flow(
        nodes=[Node.from_dict(n) for n in doc["nodes"]],
        edges=[Edge.from_dict(e) for e in doc["edges"]],
        name=doc.get("name", "flow"),
        description=doc.get("description"),
        settings=doc.get("settings") or {},
    )


def read_flow_document(source: Union[str, Path]) -> Dict[str, Any]:
    """
    Read and parse a YAML or JSON flow document.

    Raises:
        FlowDocumentError: If the file cannot be read or parsed
    """
    uri = str(source)
    try:
        with fsspec.open(uri, "r", encoding="utf-8") as f:
            content = f.read()
    except (OSError, ValueError) as e:
        raise FlowDocumentError(f"Cannot read flow document '{uri}': {e}")

    try:
        if uri.endswith(".json"):
            doc = json.loads(content)
        else:
            doc = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise FlowDocumentError(f"Cannot parse flow document '{uri}': {e}")

    if not isinstance(doc, dict):
        raise FlowDocumentError(
            f"Flow document '{uri}' must be a mapping, got {type(doc).__name__}"
        )
    logger.debug(f"Loaded flow document {uri}")
    return doc


def load_flow(source: Union[str, Path, Dict[str, Any]]) -> Flow:
    """Load a flow from a path/URI or an already-parsed document."""
    if isinstance(source, dict):
        return parse_flow(source)
    return parse_flow(read_flow_document(source))
