"""
Tests Package - Unit and Integration Tests

Test structure:
- tests/unit/ - Fast, isolated unit tests (HTTP mocked with respx)
- tests/integration/ - Full pipeline runs against mocked sites and tmp files
- tests/conftest.py - Shared fixtures
"""
