"""Logging and Prometheus metrics for feedwatch."""
