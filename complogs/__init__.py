"""Logging configuration, text and JSON formats, runtime verbosity control and related helpers."""

__version__ = "0.1.0"