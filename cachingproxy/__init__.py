"""A threaded HTTP forward proxy with an in-memory LRU response cache."""

__version__ = "0.1.0"