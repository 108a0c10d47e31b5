"""Database Infrastructure — declarative Base shared by the ORM models.

Invariants:
    - Single async engine per process (infrastructure/database.py, initialized via init_db)
    - All sessions are async (AsyncSession)

Design Decisions:
    - asyncpg driver for PostgreSQL in production, aiosqlite for tests
"""
