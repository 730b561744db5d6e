from __future__ import annotations

import random

import pytest

from pressurefield.errors import ConfigurationError
from pressurefield.protocols.experiment_logic import (
    TargetSpec,
    build_target_table,
    check_plan,
    generate_sequence,
    iter_blocks,
)
from pressurefield.utils.config import DEFAULT_TARGET_COMPRESSIONS, default_targets


def test_every_block_is_a_permutation() -> None:
    sequence = generate_sequence(140, 10, 10, random.Random(3))

    assert len(sequence) == 140
    blocks = list(iter_blocks(sequence, 10))
    assert len(blocks) == 14
    for block in blocks:
        assert sorted(block) == list(range(10))


def test_sequence_is_reproducible_with_seeded_rng() -> None:
    first = generate_sequence(40, 4, 4, random.Random(11))
    second = generate_sequence(40, 4, 4, random.Random(11))

    assert first == second


def test_blocks_are_shuffled_independently() -> None:
    sequence = generate_sequence(200, 10, 10, random.Random(5))
    blocks = {tuple(block) for block in iter_blocks(sequence, 10)}

    assert len(blocks) > 1


@pytest.mark.parametrize(
    "total, block, count",
    [(140, 10, 9), (145, 10, 10), (0, 10, 10), (10, 0, 0)],
)
def test_check_plan_rejects_unbalanced_plans(total, block, count) -> None:
    with pytest.raises(ConfigurationError):
        check_plan(total, block, count)


def test_default_targets_build_a_valid_table() -> None:
    table = build_target_table(default_targets(), 10)

    assert len(table) == 10
    assert table[0] == TargetSpec(id=0, position=(0.18794, 0.0, 0.0), target_compression=0.68794)
    assert [t.target_compression for t in table] == DEFAULT_TARGET_COMPRESSIONS
    assert [t.id for t in table] == list(range(10))


def test_target_table_length_must_match_count() -> None:
    with pytest.raises(ConfigurationError, match="target_count"):
        build_target_table(default_targets()[:9], 10)


def test_target_compressions_must_not_increase() -> None:
    entries = default_targets([0.5, 0.6])

    with pytest.raises(ConfigurationError, match="non-increasing"):
        build_target_table(entries, 2)


@pytest.mark.parametrize(
    "entry",
    [
        {"position": [0.0, 0.0], "target_compression": 0.5},
        {"position": [0.0, 0.0, 0.0]},
        {"position": ["a", 0.0, 0.0], "target_compression": 0.5},
        "not a mapping",
    ],
)
def test_malformed_target_entries_are_rejected(entry) -> None:
    with pytest.raises(ConfigurationError):
        build_target_table([entry], 1)
