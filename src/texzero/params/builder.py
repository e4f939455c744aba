"""Lazy combinatorial expansion of test parameters.

A ``ParamsBuilder`` is an immutable pipeline of stages. Each stage either
adds an axis (``combine``, ``expand``, ``combine_with_params``) or prunes
the partial records produced so far (``unless``, ``filter``). Stages run in
declaration order, so a pruning stage declared before an axis stops dead
branches from being expanded by it.

Predicates and expansion functions name the axes they read as parameters::

    builder = (
        ParamsBuilder()
        .combine("read_method", list(ReadMethod))
        .combine("sample_count", [1, 4])
        .unless(lambda read_method, sample_count: sample_count > 1 and read_method == "CopyToBuffer")
    )

so an axis read before it is bound is reported when the stage is declared,
not when the matrix is iterated.
"""

from __future__ import annotations

import inspect
import itertools
from collections.abc import Callable, Iterable, Iterator, Mapping
from enum import Enum
from typing import Any

from texzero.exceptions import MatrixDefinitionError

Record = dict[str, Any]
Stage = Callable[[Iterable[Record]], Iterator[Record]]


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


class CaseParams(Mapping[str, Any]):
    """One fully bound path through every axis of a ``ParamsBuilder``.

    Immutable; values are reachable both as ``params["format"]`` and
    ``params.format``.
    """

    __slots__ = ("_case_keys", "_values")

    def __init__(self, values: Mapping[str, Any], case_keys: Iterable[str] = ()):
        object.__setattr__(self, "_values", dict(values))
        object.__setattr__(self, "_case_keys", tuple(k for k in case_keys if k in values))

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._values[name]
        except KeyError:
            raise AttributeError(f"CaseParams has no axis {name!r}") from None

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("CaseParams is immutable")

    def __hash__(self) -> int:
        return hash(tuple(self._values.items()))

    def __repr__(self) -> str:
        return f"CaseParams({self.case_id})"

    @property
    def case(self) -> dict[str, Any]:
        """Values of the axes declared before ``begin_subcases()``."""
        return {k: self._values[k] for k in self._case_keys}

    @property
    def subcase(self) -> dict[str, Any]:
        return {k: v for k, v in self._values.items() if k not in self._case_keys}

    @property
    def case_id(self) -> str:
        return ";".join(f"{k}={_format_value(v)}" for k, v in self._values.items())

    def to_dict(self) -> dict[str, Any]:
        return dict(self._values)


class ParamsBuilder:
    """Immutable, order-preserving builder of parameter combinations."""

    def __init__(
        self,
        stages: tuple[Stage, ...] = (),
        bound: tuple[str, ...] = (),
        case_keys: tuple[str, ...] | None = None,
    ):
        self._stages = stages
        self._bound = bound
        self._case_keys = case_keys

    # ------------------------------------------------------------------
    # Declaration
    # ------------------------------------------------------------------

    def _with_stage(self, stage: Stage, new_keys: Iterable[str] = ()) -> ParamsBuilder:
        bound = list(self._bound)
        for key in new_keys:
            if not key.isidentifier():
                raise MatrixDefinitionError(f"Axis name {key!r} is not a valid identifier")
            if key in bound:
                raise MatrixDefinitionError(f"Axis {key!r} is bound twice")
            bound.append(key)
        return ParamsBuilder(self._stages + (stage,), tuple(bound), self._case_keys)

    def _bind(self, fn: Callable[..., Any]) -> Callable[[Record], Any]:
        """Adapt ``fn`` to take a record, checking its axes are already bound."""
        name = getattr(fn, "__qualname__", repr(fn))
        axes: list[str] = []
        takes_all = False
        for param in inspect.signature(fn).parameters.values():
            if param.kind is inspect.Parameter.VAR_KEYWORD:
                takes_all = True
            elif param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.VAR_POSITIONAL):
                raise MatrixDefinitionError(f"{name} must take axes as keyword parameters")
            elif param.name in self._bound:
                axes.append(param.name)
            elif param.default is inspect.Parameter.empty:
                raise MatrixDefinitionError(
                    f"{name} reads axis {param.name!r} before it is bound "
                    f"(bound so far: {', '.join(self._bound) or 'none'})"
                )

        if takes_all:
            return lambda record: fn(**record)
        return lambda record: fn(**{axis: record[axis] for axis in axes})

    def combine(self, name: str, values: Iterable[Any]) -> ParamsBuilder:
        """Add an axis taking every value in ``values`` for each record."""
        choices = tuple(values)

        def stage(upstream: Iterable[Record]) -> Iterator[Record]:
            for record in upstream:
                for value in choices:
                    yield {**record, name: value}

        return self._with_stage(stage, [name])

    def expand(self, name: str, fn: Callable[..., Iterable[Any]]) -> ParamsBuilder:
        """Add an axis whose values depend on axes bound earlier."""
        call = self._bind(fn)

        def stage(upstream: Iterable[Record]) -> Iterator[Record]:
            for record in upstream:
                for value in call(record):
                    yield {**record, name: value}

        return self._with_stage(stage, [name])

    def combine_with_params(self, records: Iterable[Mapping[str, Any]]) -> ParamsBuilder:
        """Add several axes that vary together, one literal bundle at a time."""
        bundles = tuple(dict(r) for r in records)
        if not bundles:
            raise MatrixDefinitionError("combine_with_params() needs at least one record")
        keys = list(bundles[0])
        for bundle in bundles[1:]:
            if list(bundle) != keys:
                raise MatrixDefinitionError(
                    f"combine_with_params() records must share keys: {keys} != {list(bundle)}"
                )

        def stage(upstream: Iterable[Record]) -> Iterator[Record]:
            for record in upstream:
                for bundle in bundles:
                    yield {**record, **bundle}

        return self._with_stage(stage, keys)

    def unless(self, predicate: Callable[..., bool]) -> ParamsBuilder:
        """Drop records for which ``predicate`` holds."""
        call = self._bind(predicate)

        def stage(upstream: Iterable[Record]) -> Iterator[Record]:
            return (record for record in upstream if not call(record))

        return self._with_stage(stage)

    def filter(self, predicate: Callable[..., bool]) -> ParamsBuilder:
        """Keep only records for which ``predicate`` holds."""
        call = self._bind(predicate)

        def stage(upstream: Iterable[Record]) -> Iterator[Record]:
            return (record for record in upstream if call(record))

        return self._with_stage(stage)

    def begin_subcases(self) -> ParamsBuilder:
        """Mark the axes bound so far as case axes; later ones are subcases."""
        if self._case_keys is not None:
            raise MatrixDefinitionError("begin_subcases() may only be called once")
        return ParamsBuilder(self._stages, self._bound, self._bound)

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------

    @property
    def axes(self) -> tuple[str, ...]:
        return self._bound

    @property
    def case_keys(self) -> tuple[str, ...]:
        return self._case_keys if self._case_keys is not None else self._bound

    @property
    def subcase_keys(self) -> tuple[str, ...]:
        return tuple(k for k in self._bound if k not in self.case_keys)

    def __iter__(self) -> Iterator[CaseParams]:
        records: Iterable[Record] = iter([{}])
        for stage in self._stages:
            records = stage(records)
        case_keys = self.case_keys
        for record in records:
            yield CaseParams(record, case_keys)

    def group_by_case(self) -> Iterator[tuple[dict[str, Any], list[CaseParams]]]:
        """Group consecutive records sharing case-axis values, preserving order."""
        for _, group in itertools.groupby(self, key=lambda p: tuple(p.case.items())):
            members = list(group)
            yield members[0].case, members

    def count(self) -> int:
        return sum(1 for _ in self)
