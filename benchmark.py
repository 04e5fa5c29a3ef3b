# benchmark.py
import os
import json
import time
import logging
import itertools
import numpy as np
from cache import CacheModel, Op
from replacement import Policy
from tracefile import TraceStats, read_trace

logger = logging.getLogger(__name__)

FULLY_ASSOCIATIVE = 0
DIRECT_MAPPED = 1
SET_ASSOCIATIVE_WAYS = (2, 4, 8, 16, 32)
WORD_BYTES = 4

REPORT_LABELS = (
    ("cache_access", "Cache Access"),
    ("read_access", "Read Access"),
    ("write_access", "Write Access"),
    ("cache_misses", "Cache Misses"),
    ("compulsory_misses", "Compulsory Misses"),
    ("capacity_misses", "Capacity Misses"),
    ("conflict_misses", "Conflict Misses"),
    ("read_misses", "Read Misses"),
    ("write_misses", "Write Misses"),
    ("dirty_blocks_evicted", "Dirty Blocks evicted"),
)


class ConfigError(ValueError):
    pass


def is_pow2(x):
    return isinstance(x, int) and not isinstance(x, bool) and x > 0 and x & (x - 1) == 0


def validate_cache_config(cache_cfg):
    """
    Check the "cache" section and return it normalised:
    {size_bytes, block_size_bytes, associativity, ways, policy, random_seed}.
    associativity 0 means fully associative, 1 direct mapped.
    """
    size = cache_cfg.get("size_bytes")
    block = cache_cfg.get("block_size_bytes")
    assoc = cache_cfg.get("associativity", DIRECT_MAPPED)
    if not is_pow2(size):
        raise ConfigError(f"Invalid cache size {size}")
    if not is_pow2(block):
        raise ConfigError(f"Invalid block size {block}")
    if block > size:
        raise ConfigError(f"Block size {block} larger than cache size {size}")
    num_blocks = size // block
    if assoc == FULLY_ASSOCIATIVE:
        ways = num_blocks
    elif assoc == DIRECT_MAPPED:
        ways = 1
    elif assoc in SET_ASSOCIATIVE_WAYS:
        if assoc > num_blocks:
            raise ConfigError(f"Associativity {assoc} exceeds the {num_blocks} blocks in the cache")
        ways = assoc
    else:
        raise ConfigError(f"Invalid Associativity {assoc}")
    try:
        policy = Policy.parse(cache_cfg.get("replacement_policy", "lru"))
    except ValueError as e:
        raise ConfigError(f"Invalid replacement policy {cache_cfg.get('replacement_policy')!r}") from e
    return {
        "size_bytes": size,
        "block_size_bytes": block,
        "associativity": assoc,
        "ways": ways,
        "policy": policy,
        "random_seed": cache_cfg.get("random_seed", None),
    }


def build_cache(cache_cfg):
    """
    Construct a CacheModel from an already validated cache section.
    """
    rng = np.random.default_rng(cache_cfg.get("random_seed"))
    return CacheModel(
        cache_cfg["size_bytes"],
        cache_cfg["block_size_bytes"],
        cache_cfg["ways"],
        replacement_policy=cache_cfg["policy"],
        rng=rng,
    )


class TraceGenerator:
    """
    Synthetic (address, op) stream over a working set, for runs without a
    trace file.
    """

    PATTERNS = ("sequential", "random", "mixed", "strided")

    def __init__(self, trace_cfg):
        self.rng = np.random.default_rng(trace_cfg.get("random_seed", None))
        self.num_requests = trace_cfg.get("num_requests", 10000)
        self.read_ratio = trace_cfg.get("read_ratio", 0.8)
        self.access_pattern = trace_cfg.get("access_pattern", "mixed")
        self.working_set_bytes = max(WORD_BYTES, trace_cfg.get("working_set_bytes", 64 * 1024))
        self.stride_bytes = trace_cfg.get("stride_bytes", 64)
        if self.access_pattern not in self.PATTERNS:
            raise ConfigError(f"Unknown access pattern {self.access_pattern!r}")
        self._seq_ptr = 0

    def _advance(self, step):
        addr = self._seq_ptr
        self._seq_ptr = (addr + step) % self.working_set_bytes
        return addr

    def _random_address(self):
        words = self.working_set_bytes // WORD_BYTES
        return int(self.rng.integers(0, words)) * WORD_BYTES

    def _generate_address(self):
        if self.access_pattern == "sequential":
            return self._advance(WORD_BYTES)
        elif self.access_pattern == "strided":
            return self._advance(self.stride_bytes)
        elif self.access_pattern == "random":
            return self._random_address()
        else:  # mixed: mostly sequential with some random
            if self.rng.random() < 0.8:
                return self._advance(WORD_BYTES)
            return self._random_address()

    def _generate_op(self):
        return Op.READ if self.rng.random() < self.read_ratio else Op.WRITE

    def __iter__(self):
        for _ in range(self.num_requests):
            yield self._generate_address(), self._generate_op()


def summarize(cache, duration_s=0.0, trace_stats=None):
    counters = cache.counters.as_dict()
    total = counters["cache_access"]
    misses = counters["cache_misses"]
    miss_rate = misses / total if total else 0.0
    summary = {
        "config": cache.stats(),
        "counters": counters,
        "hit_rate": 1.0 - miss_rate if total else 0.0,
        "miss_rate": miss_rate,
        "miss_breakdown": {
            "compulsory": counters["compulsory_misses"],
            "capacity": counters["capacity_misses"],
            "conflict": counters["conflict_misses"],
        },
        "duration_s": duration_s,
    }
    if trace_stats is not None:
        summary["trace"] = trace_stats.as_dict()
    return summary


class SimulationRunner:
    def __init__(self, cfg):
        self.cfg = cfg
        self.cache_cfg = validate_cache_config(cfg.get("cache", {}))
        self.cache = build_cache(self.cache_cfg)
        self.trace_cfg = cfg.get("trace", {})
        self.trace_stats = TraceStats()

    def records(self):
        """
        The access stream: the configured trace file, or a synthetic one.
        """
        path = self.trace_cfg.get("path")
        if path:
            logger.info("replaying trace file %s", path)
            return read_trace(path, self.trace_stats)
        logger.info("generating %s trace (%d requests)",
                    self.trace_cfg.get("access_pattern", "mixed"),
                    self.trace_cfg.get("num_requests", 10000))
        return iter(TraceGenerator(self.trace_cfg))

    def run(self, records=None):
        records = self.records() if records is None else records
        start = time.time()
        self.cache.replay(records)
        end = time.time()
        summary = summarize(self.cache, end - start, self.trace_stats)
        if self.trace_stats.skipped:
            logger.warning("skipped %d malformed trace lines", self.trace_stats.skipped)
        return summary

    def save_results(self, summary, out_cfg):
        results_dir = out_cfg.get("results_dir", "results")
        os.makedirs(results_dir, exist_ok=True)
        path = os.path.join(results_dir, out_cfg.get("results_file", "results.json"))
        with open(path, "w") as f:
            json.dump(summary, f, indent=2)
        return path


def run_sweep(cfg, records):
    """
    Replay one trace through every (associativity, policy) pair listed in
    cfg["sweep"], a fresh cache each time. Missing lists fall back to the
    value in cfg["cache"].
    """
    records = list(records)
    sweep_cfg = cfg.get("sweep", {})
    base = cfg.get("cache", {})
    assocs = sweep_cfg.get("associativity", [base.get("associativity", DIRECT_MAPPED)])
    policies = sweep_cfg.get("replacement_policy", [base.get("replacement_policy", "lru")])
    rows = []
    for assoc, policy in itertools.product(assocs, policies):
        cache_cfg = validate_cache_config({**base, "associativity": assoc, "replacement_policy": policy})
        cache = build_cache(cache_cfg)
        start = time.time()
        cache.replay(records)
        summary = summarize(cache, time.time() - start)
        logger.info("%s / %s: miss rate %.4f", cache.geometry.organization,
                    cache.policy.label, summary["miss_rate"])
        rows.append(summary)
    return rows


def format_report(summary):
    counters = summary["counters"]
    cfg = summary["config"]
    lines = [
        "***********************",
        "Cache Settings for Simulation",
        f"Cache size : {cfg['cache_size_bytes']}",
        f"Block size : {cfg['block_size_bytes']}",
        cfg["organization"],
        cfg["replacement_policy"],
        "****************************",
    ]
    lines += [f"{label} :{counters[key]}" for key, label in REPORT_LABELS]
    return "\n".join(lines)


def format_cache(cache):
    """
    Per-block state dump, one "<set> V <valid> D <dirty> T <tag>" line per
    way, followed by the replacement metadata of each set that has any.
    """
    lines = []
    for set_index, way, blk in cache.blocks():
        if way == 0:
            lines.append(f"**** Set {set_index}")
        lines.append(f"{set_index} V {int(blk.valid)} D {int(blk.dirty)} T {blk.tag}")
    for set_index in range(cache.geometry.num_sets):
        meta = cache.replacement.metadata(set_index)
        if meta:
            lines.append(f"Meta Data set {set_index}: {meta}")
    return "\n".join(lines)
