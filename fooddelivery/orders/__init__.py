"""Order API: owns the order table and publishes lifecycle events."""
