"""Half-open index ranges over a texture's (mip level, array layer) space."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import NamedTuple, Union


@dataclass(frozen=True)
class Range:
    """Integer interval ``[begin, end)``. Empty when ``begin == end``."""

    begin: int
    end: int

    def __post_init__(self) -> None:
        if self.end < self.begin:
            raise ValueError(f"Range end ({self.end}) precedes begin ({self.begin})")

    @classmethod
    def from_count(cls, begin: int, count: int) -> Range:
        return cls(begin, begin + count)

    @property
    def count(self) -> int:
        return self.end - self.begin

    def __len__(self) -> int:
        return self.count

    def __iter__(self) -> Iterator[int]:
        return iter(range(self.begin, self.end))

    def __contains__(self, value: object) -> bool:
        return isinstance(value, int) and self.begin <= value < self.end


RangeLike = Union[Range, Mapping[str, int]]


def end_of(r: RangeLike) -> int:
    """Return the exclusive end of ``r``.

    ``r`` is a ``Range`` or a mapping holding ``begin`` and either ``count``
    or ``end``; ``count`` wins when both are present.
    """
    if isinstance(r, Range):
        return r.end
    if "count" in r:
        return r["begin"] + r["count"]
    return r["end"]


def as_range(r: RangeLike) -> Range:
    """Normalize any accepted range form to a ``Range``."""
    if isinstance(r, Range):
        return r
    return Range(r["begin"], end_of(r))


class Subresource(NamedTuple):
    level: int
    slice: int


class MipLevel(NamedTuple):
    level: int
    slices: Iterator[int]


class SubresourceRange:
    """A mip-level range crossed with an array-layer range.

    Pure coordinate descriptor: it owns no texture and is never checked
    against a texture's real extent. Every traversal is re-derived from the
    two immutable ranges, so ``each()`` and ``mip_levels()`` can be called
    any number of times.
    """

    __slots__ = ("layer_range", "mip_range")

    def __init__(self, mip_range: RangeLike, layer_range: RangeLike) -> None:
        self.mip_range = as_range(mip_range)
        self.layer_range = as_range(layer_range)

    @classmethod
    def single(cls, level: int, slice: int) -> SubresourceRange:
        return cls(Range.from_count(level, 1), Range.from_count(slice, 1))

    def each(self) -> Iterator[Subresource]:
        for level in self.mip_range:
            for slice in self.layer_range:
                yield Subresource(level, slice)

    def mip_levels(self) -> Iterator[MipLevel]:
        for level in self.mip_range:
            yield MipLevel(level, iter(self.layer_range))

    def __len__(self) -> int:
        return self.mip_range.count * self.layer_range.count

    def __contains__(self, item: object) -> bool:
        if not isinstance(item, tuple) or len(item) != 2:
            return False
        level, slice = item
        return level in self.mip_range and slice in self.layer_range

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SubresourceRange):
            return NotImplemented
        return self.mip_range == other.mip_range and self.layer_range == other.layer_range

    def __hash__(self) -> int:
        return hash((self.mip_range, self.layer_range))

    def __repr__(self) -> str:
        mips, layers = self.mip_range, self.layer_range
        return (
            f"SubresourceRange(mips=[{mips.begin},{mips.end}), "
            f"layers=[{layers.begin},{layers.end}))"
        )
