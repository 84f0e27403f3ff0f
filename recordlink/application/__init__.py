"""
Application Module

Service facade wiring the resilience components together.
"""
