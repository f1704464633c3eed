"""
DEPENDENCY ENGINE CORE - Central exports for the graph layer.

This module provides access to:
- Wire records (TaskData, TaskCollection, DependencyError)
- The graph model and its algorithms (cycles, reachability, edge rules)

The entry points live in their own modules because they depend on
infrastructure (change log, config):
- core.mutator.GraphMutator
- core.auditor.GraphAuditor
"""

from core.schemas import (
    TaskData,
    TaskCollection,
    DependencyDetail,
    DependencyError,
    SchemaError,
    encode_collection,
    decode_collection,
    collection_to_dict,
    collection_from_dict,
)
from core.graph_model import DependencyGraph, GraphError, TaskNotFoundError
from core.cycles import CycleCheck, would_create_cycle, find_all_cycles
from core.reachability import (
    has_path,
    find_indirect_path,
    has_alternate_path,
    chain_length,
    dependency_chain,
    impact_analysis,
)
from core.edge_rules import TypeValidation, validate_dependency_type
from core.heuristics import is_on_critical_path

__all__ = [
    # Records
    "TaskData",
    "TaskCollection",
    "DependencyDetail",
    "DependencyError",
    "SchemaError",
    "encode_collection",
    "decode_collection",
    "collection_to_dict",
    "collection_from_dict",
    # Graph
    "DependencyGraph",
    "GraphError",
    "TaskNotFoundError",
    "CycleCheck",
    "would_create_cycle",
    "find_all_cycles",
    "has_path",
    "find_indirect_path",
    "has_alternate_path",
    "chain_length",
    "dependency_chain",
    "impact_analysis",
    "TypeValidation",
    "validate_dependency_type",
    "is_on_critical_path",
]
