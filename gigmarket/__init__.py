"""
gigmarket - Job lifecycle and escrow ledger engine for a freelance marketplace.
"""

from .config import MarketConfig
from .market import Marketplace
from .types import Role, UserRef

try:
    from importlib.metadata import version

    __version__ = version("gigmarket")
except Exception:
    __version__ = "0.0.0"

__all__ = ["Marketplace", "MarketConfig", "Role", "UserRef"]
