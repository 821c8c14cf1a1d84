"""Rate limiting adapters.

Two implementations share one interface: a KV-backed window counter that is
consistent across workers (the default for every tier) and a per-process
in-memory limiter for low-stakes machine endpoints.
"""
