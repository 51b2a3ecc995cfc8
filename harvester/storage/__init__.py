"""
Harvester - Storage Module

Persistence sinks for fetched detail records.
"""

from harvester.storage.base import BasePersistenceSink
from harvester.storage.jsonl import JsonlSink
from harvester.storage.memory import MemorySink

__all__ = [
    "BasePersistenceSink",
    "JsonlSink",
    "MemorySink",
]
