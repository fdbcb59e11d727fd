"""
Repositories over the carecord SQLite database.

Each repository owns one table and receives the shared connection manager;
no repository opens its own connection.
"""
