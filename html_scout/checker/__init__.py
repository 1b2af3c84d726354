"""Reference checking: registry, probes, fetch limiter and the checker itself."""
