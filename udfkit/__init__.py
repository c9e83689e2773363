"""Services, message types, options and server-info helpers for map, map-stream, reduce and reduce-stream user-defined functions."""

__version__ = "0.1.0"