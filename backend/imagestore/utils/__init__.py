"""Shared helpers: caching, file I/O, time decoding and logging setup."""
