"""HTTP surface over the engine."""
