"""Shared utilities for API v1 endpoints.

Provides the network state dependency and the error helpers used by the
network, geocode and view endpoints.
"""
