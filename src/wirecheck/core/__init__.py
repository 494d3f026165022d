"""Core utilities: errors, logging, path classification."""
