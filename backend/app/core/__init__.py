"""
Core application modules.
Contains configuration, logging, metrics, tracing, Redis cache and database pools.
"""
