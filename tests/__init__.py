"""
versionstream test suite.

This package contains:
- unit/: Unit tests (in-memory log, codecs, config, CLI)
- integration/: Integration tests (SQLite files, DynamoDB client stand-in)
"""
