# replacement.py
import enum

import numpy as np


class Policy(enum.Enum):
    """
    Victim selection strategies. Values are the numeric codes the
    command-line tool has always accepted.
    """
    RANDOM = 0
    LRU = 1
    PSEUDO_LRU = 2

    @classmethod
    def parse(cls, value):
        """
        Accept a Policy, its numeric code, or a name such as "lru" / "plru".
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls(value)
        name = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        if name in POLICY_ALIASES:
            return POLICY_ALIASES[name]
        raise ValueError(f"unknown replacement policy: {value!r}")

    @property
    def label(self):
        return POLICY_LABELS[self]


POLICY_ALIASES = {
    "random": Policy.RANDOM,
    "lru": Policy.LRU,
    "plru": Policy.PSEUDO_LRU,
    "pseudo_lru": Policy.PSEUDO_LRU,
    "pseudolru": Policy.PSEUDO_LRU,
}

POLICY_LABELS = {
    Policy.RANDOM: "Random",
    Policy.LRU: "LRU",
    Policy.PSEUDO_LRU: "Pseudo LRU",
}


class RandomReplacement:
    """
    Stateless: any way may be chosen. Only asked for a victim when the set
    is full, so occupancy is not consulted.
    """

    def __init__(self, num_sets, ways, rng: np.random.Generator = None):
        self.num_sets = num_sets
        self.ways = ways
        self.rng = rng if rng is not None else np.random.default_rng()

    def select_victim(self, set_index, set_contents):
        return int(self.rng.integers(0, self.ways))

    def mark_accessed(self, set_index, set_contents, way):
        pass

    def metadata(self, set_index):
        return []


class LRUReplacement:
    """
    Per-set recency list of occupied ways. Head = least recently used,
    tail = most recently used.
    """

    def __init__(self, num_sets, ways):
        self.num_sets = num_sets
        self.ways = ways
        self.recency = [[] for _ in range(num_sets)]

    def select_victim(self, set_index, set_contents):
        order = self.recency[set_index]
        # full set: every way has been touched at least once
        assert order, f"no recency information for set {set_index}"
        return order[0]

    def mark_accessed(self, set_index, set_contents, way):
        order = self.recency[set_index]
        if way in order:
            order.remove(way)
        order.append(way)

    def metadata(self, set_index):
        return list(self.recency[set_index])


class PseudoLRUReplacement:
    """
    Binary-tree pseudo-LRU. Each set keeps 2*ways-1 cells: the first
    ways-1 are direction bits (0 = left, 1 = right), the remaining ways
    are leaves remembering the last tag placed in that way.
    """

    UNUSED = -1

    def __init__(self, num_sets, ways):
        assert ways & (ways - 1) == 0, f"ways ({ways}) must be a power of 2"
        self.num_sets = num_sets
        self.ways = ways
        self.tree = [
            [0] * (ways - 1) + [self.UNUSED] * ways
            for _ in range(num_sets)
        ]

    def leaf(self, way):
        return way + self.ways - 1

    def select_victim(self, set_index, set_contents):
        cells = self.tree[set_index]
        node = 0
        while node < self.ways - 1:
            node = 2 * node + 1 if cells[node] == 0 else 2 * node + 2
        return node - (self.ways - 1)

    def mark_accessed(self, set_index, set_contents, way):
        cells = self.tree[set_index]
        node = self.leaf(way)
        cells[node] = set_contents[way].tag
        while node > 0:
            node = (node - 1) // 2
            cells[node] ^= 1

    def metadata(self, set_index):
        return list(self.tree[set_index])


def make_policy(policy, num_sets, ways, rng=None):
    """
    Build the strategy object for `policy` (anything Policy.parse accepts).
    `rng` is only used by the random policy.
    """
    policy = Policy.parse(policy)
    if policy is Policy.RANDOM:
        return RandomReplacement(num_sets, ways, rng)
    if policy is Policy.LRU:
        return LRUReplacement(num_sets, ways)
    return PseudoLRUReplacement(num_sets, ways)
