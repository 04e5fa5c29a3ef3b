import numpy as np
import pytest

from cache import Block
from replacement import (LRUReplacement, Policy, PseudoLRUReplacement,
                         RandomReplacement, make_policy)


def blocks(*tags):
    out = []
    for tag in tags:
        blk = Block()
        blk.tag, blk.valid = tag, True
        out.append(blk)
    return out


@pytest.mark.parametrize("value,expected", [
    (0, Policy.RANDOM),
    (1, Policy.LRU),
    (2, Policy.PSEUDO_LRU),
    ("Random", Policy.RANDOM),
    ("lru", Policy.LRU),
    ("plru", Policy.PSEUDO_LRU),
    ("Pseudo LRU", Policy.PSEUDO_LRU),
    ("pseudo-lru", Policy.PSEUDO_LRU),
    (Policy.LRU, Policy.LRU),
])
def test_policy_parse(value, expected):
    assert Policy.parse(value) is expected


@pytest.mark.parametrize("value", [3, "fifo", "", True])
def test_policy_parse_rejects_unknown(value):
    with pytest.raises(ValueError):
        Policy.parse(value)


def test_make_policy_variants():
    assert isinstance(make_policy("random", 4, 2), RandomReplacement)
    assert isinstance(make_policy(1, 4, 2), LRUReplacement)
    assert isinstance(make_policy(Policy.PSEUDO_LRU, 4, 2), PseudoLRUReplacement)


def test_random_is_reproducible_with_seed():
    a = RandomReplacement(1, 8, np.random.default_rng(123))
    b = RandomReplacement(1, 8, np.random.default_rng(123))
    contents = blocks(*range(8))
    picks_a = [a.select_victim(0, contents) for _ in range(50)]
    picks_b = [b.select_victim(0, contents) for _ in range(50)]
    assert picks_a == picks_b
    assert all(0 <= w < 8 for w in picks_a)
    assert len(set(picks_a)) > 1


def test_random_has_no_state():
    policy = RandomReplacement(2, 4, np.random.default_rng(0))
    policy.mark_accessed(0, blocks(1, 2, 3, 4), 2)
    assert policy.metadata(0) == []


def test_lru_victim_is_least_recent():
    policy = LRUReplacement(2, 4)
    contents = blocks(10, 11, 12, 13)
    for way in range(4):
        policy.mark_accessed(1, contents, way)
    assert policy.select_victim(1, contents) == 0
    policy.mark_accessed(1, contents, 0)
    assert policy.metadata(1) == [1, 2, 3, 0]
    assert policy.select_victim(1, contents) == 1
    # other set untouched
    assert policy.metadata(0) == []


def test_plru_initial_tree():
    policy = PseudoLRUReplacement(1, 4)
    assert policy.metadata(0) == [0, 0, 0, -1, -1, -1, -1]
    assert policy.select_victim(0, blocks(1, 2, 3, 4)) == 0


def test_plru_mark_writes_leaf_and_inverts_path():
    policy = PseudoLRUReplacement(1, 4)
    contents = blocks(5, 6, 7, 8)
    policy.mark_accessed(0, contents, 0)
    assert policy.metadata(0) == [1, 1, 0, 5, -1, -1, -1]
    assert policy.select_victim(0, contents) == 2
    policy.mark_accessed(0, contents, 2)
    assert policy.metadata(0) == [0, 1, 1, 5, -1, 7, -1]
    assert policy.select_victim(0, contents) == 1


def test_plru_select_does_not_mutate():
    policy = PseudoLRUReplacement(1, 8)
    contents = blocks(*range(8))
    policy.mark_accessed(0, contents, 3)
    before = policy.metadata(0)
    policy.select_victim(0, contents)
    policy.select_victim(0, contents)
    assert policy.metadata(0) == before


@pytest.mark.parametrize("ways", [2, 4, 8, 16, 32])
def test_plru_just_touched_way_is_not_next_victim(ways):
    policy = PseudoLRUReplacement(1, ways)
    contents = blocks(*range(ways))
    policy.mark_accessed(0, contents, 0)
    assert policy.select_victim(0, contents) != 0


def test_plru_fill_in_order_returns_to_first_way():
    policy = PseudoLRUReplacement(1, 4)
    contents = blocks(1, 2, 3, 4)
    for way in range(4):
        policy.mark_accessed(0, contents, way)
    assert policy.select_victim(0, contents) == 0


def test_plru_single_way():
    policy = PseudoLRUReplacement(3, 1)
    contents = blocks(9)
    assert policy.select_victim(2, contents) == 0
    policy.mark_accessed(2, contents, 0)
    assert policy.metadata(2) == [9]


def test_plru_sets_are_independent():
    policy = PseudoLRUReplacement(2, 2)
    policy.mark_accessed(0, blocks(4, 5), 0)
    assert policy.select_victim(0, None) == 1
    assert policy.select_victim(1, None) == 0
