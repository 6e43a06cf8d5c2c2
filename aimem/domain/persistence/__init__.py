"""Ledger persistence for project memory and approvals."""

from .memory_store import ProjectMemoryStore
from .approval_store import ApprovalStore

__all__ = ["ProjectMemoryStore", "ApprovalStore"]
