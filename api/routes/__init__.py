"""
API routes package for SetupDiff.
"""
from api.routes import comparison, setups

__all__ = ["comparison", "setups"]
