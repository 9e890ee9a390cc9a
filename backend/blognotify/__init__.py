"""Blog notification preference-and-delivery engine."""
