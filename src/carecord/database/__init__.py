"""
Database package for carecord.

Public API:
    - db_connection: Process-wide aiosqlite connection manager
    - SchemaManager: Table / index creation and schema version tracking
"""
