"""Infrastructure Layer — database, graph store, Google clients and logging.

Invariants:
    - All external calls wrapped with retry/timeout/error mapping
    - Store and provider failures surface as UpstreamError subclasses

Design Decisions:
    - Resilient wrappers over raw clients (ADR: single responsibility)
"""
