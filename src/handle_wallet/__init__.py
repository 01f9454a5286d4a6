"""handle-wallet — derive, claim and use registry handles from one master key."""

from __future__ import annotations

__version__ = "0.1.0"
