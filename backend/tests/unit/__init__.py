"""
Unit tests package.

Tests for domain values, repositories, services and the receipt verifier.
The HTTP layer is never involved; the database is in-memory SQLite.
"""
