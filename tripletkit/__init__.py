"""Deterministic split assignment, persisted sampling state, paged file streaming and text helpers."""

__version__ = "0.3.0a0"

__all__ = ["filestore", "filestream", "splits", "textutil", "types"]