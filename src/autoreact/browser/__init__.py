from __future__ import annotations

from .controller import BrowserController
from .probe import ElementProbe

__all__ = [
	"BrowserController",
	"ElementProbe",
]
