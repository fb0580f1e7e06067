"""Web framework adapters serving monitoring endpoints."""
