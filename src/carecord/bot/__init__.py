"""
Discord integration for carecord: the py-cord action executor and cogs.
"""
