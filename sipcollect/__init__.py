"""Decode captured frames, collect SIP messages by Call-ID and build batched SQL inserts."""

__version__ = "0.1.0"
__all__ = ["headers", "packet", "collector"]