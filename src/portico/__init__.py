"""Portico: keeps an HAProxy process in sync with declared ingress state."""

__version__ = "0.1.0"
