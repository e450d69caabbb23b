"""
Message templates for campaigns.

Loading, validation and placeholder rendering of LINE message objects.
"""
from segment_blast.services.messages.loader import (
    DEFAULT_NAME,
    MAX_MESSAGES_PER_REQUEST,
    load_messages,
    render,
    render_named,
    validate_messages,
)

__all__ = [
    "DEFAULT_NAME",
    "MAX_MESSAGES_PER_REQUEST",
    "load_messages",
    "render",
    "render_named",
    "validate_messages",
]
