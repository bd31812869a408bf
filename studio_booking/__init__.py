"""Availability and booking engine for an appointment-based studio."""

__version__ = "0.1.0"
