"""Synthesis subpackage: normalization, method tables, narrowing and emission."""

from proxysynth.synthesis.boxing import describe_hint, narrower_for, predicate_for
from proxysynth.synthesis.emission import synthesize
from proxysynth.synthesis.methods import (
    build_method_table,
    declares_failures,
    method_signature,
    resolve_signature,
)
from proxysynth.synthesis.model import (
    ClassDefinition,
    ContractSet,
    GeneratedType,
    MethodConflict,
    MethodSignature,
    MethodTable,
    ParameterSpec,
)
from proxysynth.synthesis.normalize import (
    check_conflicts,
    contract_problem,
    is_contract,
    normalize_contracts,
)

__all__ = [
    "ClassDefinition",
    "ContractSet",
    "GeneratedType",
    "MethodConflict",
    "MethodSignature",
    "MethodTable",
    "ParameterSpec",
    "build_method_table",
    "check_conflicts",
    "contract_problem",
    "declares_failures",
    "describe_hint",
    "is_contract",
    "method_signature",
    "narrower_for",
    "normalize_contracts",
    "predicate_for",
    "resolve_signature",
    "synthesize",
]
