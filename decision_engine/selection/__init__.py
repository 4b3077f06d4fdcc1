"""
Weighted random restaurant selection.

Responsibilities:
- Weight every restaurant in a collection from its selection history.
- Draw one restaurant from the weighted distribution using an injected RNG.
- Expose the weights and probabilities behind each draw.
"""
