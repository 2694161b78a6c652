"""Hybrid BM25 + vector recall, retrieval metrics, evaluation helpers and an MCP stdio bridge."""

__version__ = "0.1.0"