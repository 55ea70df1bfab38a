"""Smart model router.

Picks the most suitable LLM backend for each chat message, forwards the
message to it, and returns the answer together with routing metadata.
"""

__version__ = "0.1.0"
