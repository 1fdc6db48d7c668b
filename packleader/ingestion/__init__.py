"""
packleader Ingestion Module
===========================

Everything that talks to BloodHound CE or decodes what it returns.

Key Components:
- bloodhound_client.py: Async API client with token cache and 429 backoff
- literals.py: Reconstructs rows from flat tabular Cypher results
"""

from .bloodhound_client import BloodHoundClient
from .literals import reconstruct_rows, literal_count, to_int
