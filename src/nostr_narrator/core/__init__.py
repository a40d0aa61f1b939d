"""
Core infrastructure for nostr-narrator.

    - config.py: Settings loading and validation
    - errors.py: Error codes and exception hierarchy
    - logging/: Structured logging with numeric levels
    - metrics.py: Prometheus counters for the narration pipeline
"""
