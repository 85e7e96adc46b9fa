"""
notelens - hybrid search and link-graph ranking for personal notes.

This package ranks notes against free-text or tag queries by blending fuzzy
lexical matching with vector similarity, decorates results with a derived link
graph (backlinks, shared connections) and caches results for repeat queries.

This version uses synchronous operations; semantic lookups run on worker threads.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("notelens")
except PackageNotFoundError:
    __version__ = "0.3.0"
