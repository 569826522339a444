"""
Test suite for schemasync.

This package contains tests for all schemasync components:
- Unit tests for the column model, dialects, comparator, DDL synthesis,
  introspection, executor, reconciler, configuration and CLI
- Integration tests reconciling a real SQLite database
"""
