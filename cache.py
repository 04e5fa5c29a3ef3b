# cache.py
import collections
import enum
import logging
import math

from replacement import Policy, make_policy

logger = logging.getLogger(__name__)


class Op(enum.Enum):
    READ = "r"
    WRITE = "w"

    @classmethod
    def from_char(cls, char):
        # trace convention: 'r' is a read, anything else is a write
        return cls.READ if char == "r" else cls.WRITE


class AccessOutcome(enum.Enum):
    HIT = "hit"
    COMPULSORY = "compulsory"
    CAPACITY = "capacity"
    CONFLICT = "conflict"
    # repeat reference missing from a set that still has a free slot;
    # cannot happen while blocks only leave a set through eviction
    REFILL = "refill"


class Geometry:
    """
    Shape of one cache. Direct-mapped is ways == 1, fully associative is
    num_sets == 1; everything else is set-associative.
    Sizes are validated upstream, only asserted here.
    """

    def __init__(self, cache_size_bytes, block_size_bytes, ways):
        assert block_size_bytes > 0 and block_size_bytes & (block_size_bytes - 1) == 0, \
            f"block size ({block_size_bytes}) must be a power of 2"
        assert ways > 0 and cache_size_bytes % (ways * block_size_bytes) == 0, \
            "cache size must be a multiple of ways * block size"
        self.cache_size_bytes = cache_size_bytes
        self.block_size_bytes = block_size_bytes
        self.ways = ways
        self.num_sets = cache_size_bytes // (ways * block_size_bytes)
        assert self.num_sets > 0 and self.num_sets & (self.num_sets - 1) == 0, \
            f"number of sets ({self.num_sets}) must be a power of 2"
        self.offset_bits = int(math.log2(block_size_bytes))
        self.index_bits = int(math.log2(self.num_sets))

    @property
    def num_blocks(self):
        return self.num_sets * self.ways

    @property
    def organization(self):
        if self.ways == 1:
            return "Direct Mapped"
        if self.num_sets == 1:
            return "Fully Associative"
        return f"{self.ways} Way Set Associative"

    def __repr__(self):
        return (f"Geometry(cache_size_bytes={self.cache_size_bytes}, "
                f"block_size_bytes={self.block_size_bytes}, "
                f"num_sets={self.num_sets}, ways={self.ways})")


def decode(geometry, address):
    """
    Split `address` into (block_address, set_index, tag).
    block_address identifies the line regardless of set mapping.
    """
    block_address = address >> geometry.offset_bits
    set_index = block_address % geometry.num_sets
    tag = address >> (geometry.offset_bits + geometry.index_bits)
    return block_address, set_index, tag


class Block:
    __slots__ = ("tag", "valid", "dirty")

    def __init__(self):
        self.tag = 0
        self.valid = False
        self.dirty = False

    def __repr__(self):
        return f"Block(tag={self.tag}, valid={self.valid}, dirty={self.dirty})"


Probe = collections.namedtuple("Probe", ["hit", "way"])


class BlockStore:
    """
    num_sets * ways block records in one flat list, addressed by
    (set_index, way). Allocated once, mutated in place.
    """

    def __init__(self, geometry):
        self.num_sets = geometry.num_sets
        self.ways = geometry.ways
        self.blocks = [Block() for _ in range(self.num_sets * self.ways)]

    def _slot(self, set_index, way):
        return set_index * self.ways + way

    def block(self, set_index, way):
        return self.blocks[self._slot(set_index, way)]

    def set_contents(self, set_index):
        start = set_index * self.ways
        return self.blocks[start:start + self.ways]

    def probe(self, set_index, tag):
        """
        Look for `tag` in the set. On a hit way is the matching slot;
        on a miss it is the first free slot, or None if the set is full.
        """
        free = None
        for way, blk in enumerate(self.set_contents(set_index)):
            if not blk.valid:
                if free is None:
                    free = way
            elif blk.tag == tag:
                return Probe(True, way)
        return Probe(False, free)

    def install(self, set_index, way, tag):
        blk = self.block(set_index, way)
        blk.valid = True
        blk.tag = tag

    def evict(self, set_index, way, new_tag):
        blk = self.block(set_index, way)
        was_dirty = blk.dirty
        blk.dirty = False
        blk.tag = new_tag
        return was_dirty

    def set_dirty(self, set_index, way):
        self.block(set_index, way).dirty = True

    def __iter__(self):
        for slot, blk in enumerate(self.blocks):
            yield slot // self.ways, slot % self.ways, blk

    def __len__(self):
        return len(self.blocks)


class ReferenceHistory:
    """
    Every block address ever presented. Never pruned: a compulsory miss
    can only be recognised against the whole history of the run.
    """

    def __init__(self):
        self._seen = set()

    def seen(self, block_address):
        if block_address in self._seen:
            return True
        self._seen.add(block_address)
        return False

    def __len__(self):
        return len(self._seen)

    def __contains__(self, block_address):
        return block_address in self._seen


class AccessCounters:
    FIELDS = (
        "cache_access",
        "read_access",
        "write_access",
        "cache_misses",
        "compulsory_misses",
        "capacity_misses",
        "conflict_misses",
        "read_misses",
        "write_misses",
        "dirty_blocks_evicted",
    )

    def __init__(self):
        for name in self.FIELDS:
            setattr(self, name, 0)

    def as_dict(self):
        return {name: getattr(self, name) for name in self.FIELDS}

    def __repr__(self):
        return "AccessCounters({})".format(
            ", ".join(f"{k}={v}" for k, v in self.as_dict().items()))


class CacheModel:
    """
    One simulated cache: geometry, block metadata, replacement state,
    reference history and counters. Reads and writes share one access
    path; only the op-specific counters and the dirty bit differ.
    """

    def __init__(self, cache_size_bytes, block_size_bytes, ways,
                 replacement_policy=Policy.LRU, rng=None):
        self.geometry = Geometry(cache_size_bytes, block_size_bytes, ways)
        self.policy = Policy.parse(replacement_policy)
        self.store = BlockStore(self.geometry)
        self.replacement = make_policy(self.policy, self.geometry.num_sets, self.geometry.ways, rng)
        self.history = ReferenceHistory()
        self.counters = AccessCounters()

    def _count_miss(self, op):
        self.counters.cache_misses += 1
        if op is Op.READ:
            self.counters.read_misses += 1
        else:
            self.counters.write_misses += 1

    def access(self, address, op):
        c = self.counters
        c.cache_access += 1
        if op is Op.READ:
            c.read_access += 1
        else:
            c.write_access += 1

        block_address, set_index, tag = decode(self.geometry, address)
        first_reference = not self.history.seen(block_address)
        if first_reference:
            c.compulsory_misses += 1
            self._count_miss(op)

        probe = self.store.probe(set_index, tag)
        if probe.hit:
            way = probe.way
            outcome = AccessOutcome.HIT
            if op is Op.WRITE:
                self.store.set_dirty(set_index, way)
        elif probe.way is not None:
            way = probe.way
            self.store.install(set_index, way, tag)
            if op is Op.WRITE:
                self.store.set_dirty(set_index, way)
            if first_reference:
                outcome = AccessOutcome.COMPULSORY
            else:
                outcome = AccessOutcome.REFILL
                logger.warning("repeat reference to block 0x%x refilled a free slot in set %d",
                               block_address, set_index)
        else:
            if first_reference:
                outcome = AccessOutcome.COMPULSORY
            else:
                self._count_miss(op)
                if self.geometry.ways == 1:
                    c.conflict_misses += 1
                    outcome = AccessOutcome.CONFLICT
                else:
                    c.capacity_misses += 1
                    outcome = AccessOutcome.CAPACITY
            way = self.replacement.select_victim(set_index, self.store.set_contents(set_index))
            if self.store.evict(set_index, way, tag):
                c.dirty_blocks_evicted += 1
            if op is Op.WRITE:
                self.store.set_dirty(set_index, way)

        self.replacement.mark_accessed(set_index, self.store.set_contents(set_index), way)
        logger.debug("%s 0x%08x set %d tag 0x%x way %d: %s",
                     op.value, address, set_index, tag, way, outcome.value)
        return outcome

    def read(self, address):
        return self.access(address, Op.READ)

    def write(self, address):
        return self.access(address, Op.WRITE)

    def replay(self, records):
        """
        Feed an iterable of (address, op) pairs through the cache.
        Returns the counters.
        """
        for address, op in records:
            self.access(address, op)
        return self.counters

    def blocks(self):
        """
        Current (set_index, way, block) state of every slot.
        """
        return iter(self.store)

    def stats(self):
        used_lines = sum(1 for _, _, blk in self.store if blk.valid)
        return {
            "cache_size_bytes": self.geometry.cache_size_bytes,
            "block_size_bytes": self.geometry.block_size_bytes,
            "num_sets": self.geometry.num_sets,
            "ways": self.geometry.ways,
            "organization": self.geometry.organization,
            "replacement_policy": self.policy.label,
            "used_lines": used_lines,
            "distinct_blocks": len(self.history),
        }
