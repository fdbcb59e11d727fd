"""
Shared data types for carecord.

- **discord_datatypes.py**: Type-safe wrappers for Discord snowflake IDs.
- **safety_datatypes.py**: Ordered levels and the fixed, per-stage result types
  passed between pipeline components.
- **policy_datatypes.py**: Per-user and per-guild safety settings and the
  Policy Gate's decision.
"""
