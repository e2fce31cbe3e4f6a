"""SQLAlchemy-backed repository helpers.

Helpers operate on an ``AsyncSession`` and never commit: the caller owns the
transaction so that a token transition and its event log entry land
atomically.
"""
