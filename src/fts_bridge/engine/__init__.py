"""
Search engine internals behind the public API.

This package provides a pure-Python postings engine:
- storage: SQLite shards holding documents, postings and values
- analyzers: Tokenizers and filters (lowercase, stop, stemming)
- stats: BM25 statistics and the weighting interface
- querytree: Immutable query trees
- matcher: Query evaluation, sorting, collapsing and windowing
- phrase: Positional checks for PHRASE and NEAR
- snippet: Highlighted snippet extraction

Failures are raised as ``NativeError``, ``sqlite3`` errors or builtin
exceptions; the public API translates them.
"""
