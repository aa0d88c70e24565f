"""
Unified exporter service package.

Polls every configured Prometheus target on each scrape, injects per-target
labels, merges same-named metric families and serves the result on the
`/metrics` endpoint.
"""
