"""
Structured logging for prereq-client.

JSON logs with timestamp, level and event_type. Use get_logger() in every
module so RPC, retry and confirmation events are aggregation-friendly.
"""

from prereq_client.logging.logger import bind_address, get_logger

__all__ = ["bind_address", "get_logger"]
