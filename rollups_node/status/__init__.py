"""
Node status service.

Exposes health, per-service status and Prometheus metrics of a running
node over HTTP.
"""
