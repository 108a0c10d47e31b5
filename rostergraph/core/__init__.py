"""Core Layer — pure domain logic, no IO, no async, no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - All functions are pure and deterministic (clocks are passed in)

Design Decisions:
    - Functional core separated from imperative shell (ADR: impureim sandwich)
    - repository_protocols.py holds the Protocols the shell implements
"""
