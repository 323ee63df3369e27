"""Conversational table-booking engine for messaging channels."""

__version__ = "0.1.0"
