"""Adapters implementing core ports with third-party libraries."""
