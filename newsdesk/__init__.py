"""Newsdesk: content persistence, pagination and bulk editing for the admin panel."""

__version__ = "0.1.0"
