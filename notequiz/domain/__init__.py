"""Domain layer: aggregates and value objects, no I/O."""
