"""Central log collector for the app-logs topic."""
