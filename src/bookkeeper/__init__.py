"""
Transaction categorization and pattern-detection engine.

Resolves which category a transaction shows, matches merchants against
ordered pattern rules, detects recurring series and aggregates spend
into budget lines.
"""

__version__ = "0.1.0"
