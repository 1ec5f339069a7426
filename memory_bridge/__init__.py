"""
Memory Bridge

A memory service for personal-assistant agents that ingests short text
memories, rejects exact and semantic duplicates, recalls them by substring,
tag, type and day, and pushes recent changes to live subscribers.
"""

__version__ = "1.0.0"
__author__ = "Memory Bridge Team"
__description__ = "Deduplicating memory store and change feed for assistant agents"
