"""Flight number to aircraft manufacture year, backed by the FAA registry."""

from __future__ import annotations

__version__ = "0.3.0"
