"""
Infrastructure Module

Backend HTTP client, health probing and Prometheus metrics.
"""
