"""Message text built around embedded media."""

from .caption import Caption, MessageParams, PageMetadata, build_message_params

__all__ = [
    "Caption",
    "MessageParams",
    "PageMetadata",
    "build_message_params",
]
