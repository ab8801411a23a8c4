"""Keep reacting to and advancing through items on a live web page."""

from __future__ import annotations

__version__ = "0.1.0"
