"""
Core application modules.
Logging, metrics, tracing, middleware, rate limiting and external clients.
"""
