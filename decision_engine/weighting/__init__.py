"""
Selection weighting.

Responsibilities:
- Turn a restaurant's selection history within a collection into a weight.
- Penalise frequent and recent picks without ever excluding a restaurant.
- Report how long a restaurant needs to recover its full weight.
"""
