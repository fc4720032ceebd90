"""Blacksmith: regenerate SDK sources in many languages from an English specification."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
