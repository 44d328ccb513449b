"""
notequiz Test Suite
===================

Test Organization
-----------------
- tests/unit/          : Fast unit tests over in-memory fakes (no external dependencies)
- tests/integration/   : Integration tests with testcontainers (PostgreSQL, Redis)
- tests/fakes.py       : In-memory gateway, membership resolver, clock and session factory

Testing Philosophy
------------------
- Unit tests: Fast, isolated, test session rules and ranking logic
- Integration tests: Slower, test real infrastructure interactions
- Use pytest markers to categorize and selectively run tests
- Follow AAA pattern: Arrange, Act, Assert
"""
