"""
Decision lifecycle.

Responsibilities:
- Create personal and group decisions against a restaurant collection.
- Accept ranked votes and complete or close group decisions atomically.
- Keep at most one active decision per collection.
- Answer history, weight and selection-statistics queries.
"""
