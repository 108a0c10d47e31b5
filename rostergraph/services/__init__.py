"""Services Layer — orchestrates store and provider IO around core/ rules.

Invariants:
    - Services receive their store and providers as arguments (no globals besides lock tables)
    - Every provider and store call is time-bounded (call_bounds.py)

Design Decisions:
    - One service per operation family: session, roster sync, coursework sync, cells, courses, stats
"""
