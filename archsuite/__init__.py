"""Arch Linux installation suite: a customized-ISO builder and an installer pipeline."""

__all__ = []
__version__ = "0.1.0"
