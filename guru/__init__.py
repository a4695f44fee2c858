"""
Guru - Adaptive Memory for AI Coding Assistants

This package provides the memory and retrieval engine behind Guru:
layered memories, usage patterns, generated insights and indexed
document chunks, searchable by meaning and by exact-match filters.
"""

__version__ = "1.0.0"
