from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
)

WS_CONNECTIONS = Gauge("chat_ws_connections", "Active WebSocket connections")
WS_REJECTED = Counter(
    "chat_ws_rejected_total", "WebSocket upgrades refused by the origin check"
)
MSGS_PUBLISHED = Counter("chat_messages_published_total", "Messages published")
MSGS_DROPPED = Counter(
    "chat_messages_dropped_total", "Messages dropped from full subscriber queues"
)
INVALID_FRAMES = Counter("chat_invalid_frames_total", "Inbound frames ignored")
RATE_LIMIT_BLOCKS = Counter(
    "chat_rate_limit_blocked_total", "Messages blocked by rate limit"
)
STORE_WRITE_FAILURES = Counter(
    "chat_store_write_failures_total", "Failed durable history writes"
)
PUBLISH_LATENCY = Histogram("chat_publish_latency_seconds", "Append+publish latency")
