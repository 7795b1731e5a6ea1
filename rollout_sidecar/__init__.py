"""Rollout sidecar.

A lightweight service that swaps the image tag of a single compose-managed
application container, verifies its health, and rolls back on failure.
Runs as a separate container with Docker socket access.
"""

__version__ = "0.1.0"
