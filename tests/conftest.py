# -*- coding: utf-8 -*-
# mypy: ignore-errors

import jax
import numpy as np
import pytest

from blockgp import config as blockgp_config

jax.config.update("jax_enable_x64", True)


@pytest.fixture
def random():
    return np.random.default_rng(1058390)


@pytest.fixture(autouse=True)
def reset_config():
    config = blockgp_config.get_config()
    block_size, jitter = config.block_size, config.jitter
    yield
    config.update(block_size=block_size, jitter=jitter)
