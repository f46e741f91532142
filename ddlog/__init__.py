"""ddLOG: personal daily task tracker backend."""

__version__ = "0.1.0"
