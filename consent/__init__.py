"""
consent — persisted operator consent for claude-yolo.

Public API:
    ConsentGate       : Checks, requests and records consent per installation.
    ConsentMode       : PROMPT (operator types yes/no) or AUTO_APPROVE.
    StateStore        : Abstract get/set/delete store.
    FileStateStore    : One file per key under a directory.
    MemoryStateStore  : In-memory store for tests.
"""

from .gate import ConsentGate, ConsentMode, consent_terms
from .state_store import FileStateStore, MemoryStateStore, StateStore

__all__ = [
    "ConsentGate",
    "ConsentMode",
    "consent_terms",
    "StateStore",
    "FileStateStore",
    "MemoryStateStore",
]
