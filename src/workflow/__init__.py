"""Workflow graph helpers: node kinds, JSON extraction and export cleaning."""

from src.workflow.analysis import assess_complexity, find_cycle
from src.workflow.export import clean_for_export, import_instructions
from src.workflow.extractor import extract_json
from src.workflow.nodes import (
    N8N_PREFIX,
    NodeKind,
    classify,
    find_node,
    get_nodes,
    iter_edges,
    node_names,
    rename_node_references,
    unique_name,
)

__all__ = [
    "N8N_PREFIX",
    "NodeKind",
    "assess_complexity",
    "classify",
    "clean_for_export",
    "extract_json",
    "find_cycle",
    "find_node",
    "get_nodes",
    "import_instructions",
    "iter_edges",
    "node_names",
    "rename_node_references",
    "unique_name",
]
