"""Resilience primitives guarding the gateway's data plane.

- rate_limit: per-client fixed-window admission control on the shared store
- circuit_breaker: stops calling a failing dependency, then retries with a single trial call
- cache_aside: memoizes computed summaries with a TTL
"""
