"""Keyed storage for waiting-list entries and decisions."""

from .decisions import DecisionStore
from .entries import EntryStore

__all__ = ["DecisionStore", "EntryStore"]
