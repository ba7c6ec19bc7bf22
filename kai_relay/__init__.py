"""Streaming chat relay with dual-sided conversation state."""

__version__ = "0.1.0"
