"""Pubserve - static content server with safe path resolution and directory listings."""

__version__ = "0.1.0"
