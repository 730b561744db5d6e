"""Very small helpers for building the balanced trial plan."""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from pressurefield.errors import ConfigurationError

__all__ = [
    "TargetSpec",
    "Trial",
    "build_target_table",
    "check_plan",
    "check_target_order",
    "generate_sequence",
    "iter_blocks",
]


@dataclass(frozen=True)
class TargetSpec:
    id: int
    position: Tuple[float, float, float]
    target_compression: float


@dataclass(frozen=True)
class Trial:
    index: int
    block_index: int
    target_id: int
    target_distance: float
    started_at: float


def check_plan(total_steps: int, block_size: int, target_count: int) -> None:
    """Raise :class:`ConfigurationError` unless every block can be a full permutation."""
    if block_size <= 0 or target_count <= 0:
        raise ConfigurationError("block_size and target_count must be positive")
    if block_size != target_count:
        raise ConfigurationError(
            f"block_size ({block_size}) must equal target_count ({target_count})"
        )
    if total_steps <= 0 or total_steps % block_size:
        raise ConfigurationError(
            f"total_steps ({total_steps}) must be a positive multiple of block_size ({block_size})"
        )


def generate_sequence(
    total_steps: int,
    block_size: int,
    target_count: int,
    rng: Optional[random.Random] = None,
) -> List[int]:
    """Return target ids for every trial, one shuffled permutation per block."""
    check_plan(total_steps, block_size, target_count)
    rng = rng or random.Random()

    plan: List[int] = []
    for _ in range(total_steps // block_size):
        block = list(range(target_count))
        rng.shuffle(block)
        plan.extend(block)
    return plan


def iter_blocks(sequence: Sequence[int], block_size: int) -> Iterator[List[int]]:
    for start in range(0, len(sequence), block_size):
        yield list(sequence[start:start + block_size])


def build_target_table(entries: Iterable[Dict[str, Any]], target_count: int) -> Tuple[TargetSpec, ...]:
    """Turn ``Targets`` config entries into an immutable table indexed by id."""
    table: List[TargetSpec] = []
    for idx, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise ConfigurationError(f"Target {idx} must be a mapping, got {type(entry).__name__}")
        try:
            position = tuple(float(v) for v in entry["position"])
            compression = float(entry["target_compression"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigurationError(f"Target {idx} is malformed: {entry!r}") from exc
        if len(position) != 3:
            raise ConfigurationError(f"Target {idx} position must have 3 entries")
        table.append(TargetSpec(id=idx, position=position, target_compression=compression))  # type: ignore[arg-type]

    if len(table) != target_count:
        raise ConfigurationError(
            f"target_count is {target_count} but the target table has {len(table)} entries"
        )
    check_target_order(table)
    return tuple(table)


def check_target_order(targets: Sequence[TargetSpec]) -> None:
    """Target compressions must not increase with target id."""
    compressions = [t.target_compression for t in targets]
    if any(later > earlier for earlier, later in zip(compressions, compressions[1:])):
        raise ConfigurationError("target compressions must be non-increasing by target id")
