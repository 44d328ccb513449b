"""Infrastructure layer: config, logging, events, persistence, locking."""
