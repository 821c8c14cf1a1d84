"""Key-value store adapters.

Guards (rate limiting, cooldowns, sessions, feature flags) depend on the
abstract store only, so the in-memory backend used in tests and local
development can be swapped for Redis through configuration.
"""
