"""Core infrastructure: configuration, logging, sharding, persistence."""
