import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from cache import CacheModel


@pytest.fixture
def make_cache():
    def _make(cache_size, block_size, ways, policy="lru", seed=0):
        return CacheModel(cache_size, block_size, ways, replacement_policy=policy,
                          rng=np.random.default_rng(seed))
    return _make
