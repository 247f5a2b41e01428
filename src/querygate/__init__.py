"""
querygate: authenticated, fault-tolerant database query execution.

Decides whether outbound database connections need a managed identity
access token injected as their password, and runs every query under a
bounded retry policy that separates transient infrastructure failures from
permanent ones.
"""

__version__ = "0.1.0"
