"""Collector transports."""

from .http import HttpTransport, PROTOBUF_CONTENT_TYPE, signal_endpoint

__all__ = ["HttpTransport", "PROTOBUF_CONTENT_TYPE", "signal_endpoint"]
