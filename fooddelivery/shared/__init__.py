"""Shared plumbing: configuration, logging, Kafka bus and database access."""
