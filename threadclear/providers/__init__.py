"""
External capability providers
"""

from .base import ProviderBase, ProviderStatus

__all__ = ["ProviderBase", "ProviderStatus"]
