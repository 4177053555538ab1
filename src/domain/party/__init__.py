"""Party sessions and their persisted store."""

from .manager import PartySessionManager
from .repository import PartyStore, SqlPartyStore

__all__ = ["PartySessionManager", "PartyStore", "SqlPartyStore"]
