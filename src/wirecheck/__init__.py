"""wirecheck - reachability gate for unwired code."""

__version__ = "0.1.0"
