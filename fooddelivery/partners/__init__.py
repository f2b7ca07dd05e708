"""Partner service: partner registry and denormalized order copies."""
