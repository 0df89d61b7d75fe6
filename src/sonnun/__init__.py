"""Sonnun: signed provenance manifests for edited documents."""

from __future__ import annotations

__version__ = "0.1.0"
