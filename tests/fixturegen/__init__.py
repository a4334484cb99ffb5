"""
Fixture Generator Test Suite.

- Signal Bus gates
- Job Driver submissions and handlers
- Snapshot Gate ordering
- Store Exporter invariants
- Version Policy table
- End-to-end generation and CLI
"""
