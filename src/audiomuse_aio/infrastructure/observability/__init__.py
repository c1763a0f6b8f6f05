"""Logging, request middleware, health and readiness checks."""
