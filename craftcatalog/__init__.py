"""Curated catalog of open-world survival, crafting and building games."""

__version__ = "0.1.0"
