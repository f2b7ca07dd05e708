"""GPS tracking simulator for picked-up orders."""
