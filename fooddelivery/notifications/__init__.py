"""Notification service: customer notifications built from order events."""
