# blockgp/config.py
"""
Process wide defaults for ``blockgp``. The configuration object also owns the
package logger; modules log through children of the ``"blockgp"`` logger.
"""

import logging
import os

DEFAULT_BLOCK_SIZE = 1000


def _block_size_from_env():
    env = os.environ.get("BLOCKGP_BLOCK_SIZE")
    if env is None:
        return DEFAULT_BLOCK_SIZE
    try:
        value = int(env)
    except ValueError:
        raise ValueError(f"BLOCKGP_BLOCK_SIZE must be an integer, got {env!r}")
    if value <= 0:
        raise ValueError(f"BLOCKGP_BLOCK_SIZE must be positive, got {value}")
    return value


class _BlockGPConfig:
    def __init__(self):
        self.block_size = _block_size_from_env()
        self.jitter = None
        # logger lives in config
        self.logger = logging.getLogger("blockgp")
        if not self.logger.handlers:
            h = logging.StreamHandler()
            h.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
            self.logger.addHandler(h)
        self.logger.setLevel(logging.INFO)

    def __str__(self):
        return f"BlockGPConfig(block_size={self.block_size}, jitter={self.jitter})"

    def __repr__(self):
        return f"<BlockGPConfig block_size={self.block_size!r}, jitter={self.jitter!r}>"

    def update(self, **kwargs):
        for k, v in kwargs.items():
            if not hasattr(self, k):
                raise AttributeError(f"Unknown configuration option {k!r}")
            setattr(self, k, v)
        return self


_config = _BlockGPConfig()


def get_config():
    return _config


def set_block_size(block_size: int):
    """Set the default number of rows per block for new models"""
    if int(block_size) <= 0:
        raise ValueError("block_size must be a positive integer")
    _config.block_size = int(block_size)


def get_block_size():
    return _config.block_size


def set_jitter(jitter):
    """Set the default diagonal jitter; ``None`` means sqrt(eps) of the data"""
    _config.jitter = jitter


def get_jitter():
    return _config.jitter


def get_logger():
    return _config.logger


def set_log_level(level):
    _config.logger.setLevel(level)
