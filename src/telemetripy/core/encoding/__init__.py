"""Encoders for log entries and metrics."""
