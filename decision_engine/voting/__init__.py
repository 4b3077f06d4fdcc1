"""
Group consensus for tiered decisions.

Responsibilities:
- Score per-participant rankings with a Borda count.
- Break ties on the top score by selection weight, then by restaurant id.
- Explain the outcome in a short human-readable string.
"""
