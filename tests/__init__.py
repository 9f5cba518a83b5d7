"""Umbra test suite: unit, property and integration tests for core and treasury."""
