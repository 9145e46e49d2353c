"""Release resolution, asset synchronization and package repository publishing."""

__version__ = "0.3.0"
