"""Periodized strength programs, explainable session plans and offline-safe logging."""

__version__ = "0.1.0"
