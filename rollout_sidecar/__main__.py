"""Entry point for the rollout sidecar."""

import asyncio
import contextlib

from rollout_sidecar.config import get_settings
from rollout_sidecar.logging import setup_logging
from rollout_sidecar.server import run_server


def main() -> None:
    """Start the rollout sidecar server."""
    setup_logging()
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(run_server(get_settings()))


if __name__ == "__main__":
    main()
