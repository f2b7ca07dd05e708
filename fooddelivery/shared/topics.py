"""Kafka topic names. One topic per event type."""

ORDER_CREATED = "order-created"
ORDER_ACCEPTED = "order-accepted"
ORDER_REJECTED = "order-rejected"
ORDER_READY = "order-ready"
ORDER_PICKED_UP = "order-pickedup"
ORDER_DELIVERED = "order-delivered"
AGENT_ASSIGNED = "agent-assigned"
LOCATION_UPDATE = "location-update"
DRIVER_ARRIVING = "driver-arriving"
APP_LOGS = "app-logs"

ALL_TOPICS = (
    ORDER_CREATED,
    ORDER_ACCEPTED,
    ORDER_REJECTED,
    ORDER_READY,
    ORDER_PICKED_UP,
    ORDER_DELIVERED,
    AGENT_ASSIGNED,
    LOCATION_UPDATE,
    DRIVER_ARRIVING,
    APP_LOGS,
)
