"""Combinatorial test-parameter builder."""

from texzero.params.builder import CaseParams, ParamsBuilder

__all__ = ["CaseParams", "ParamsBuilder"]
