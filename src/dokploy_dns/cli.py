#!/usr/bin/env python3
"""dokploy-dns - Registrar CNAMEs for Traefik-routed containers

Watches the local Docker engine for running containers that carry
``traefik.enable=true`` and ``traefik.http.routers.<name>.rule=Host(...)``
labels, and keeps one CNAME per declared hostname at the registrar
(Simply.com). Records of a stopped container are deleted after a grace
period, so restarts and redeploys do not flap DNS.

See ``dokploy_dns.config`` for the environment variables.
"""

from __future__ import annotations

import logging
import os
import signal
import sys
from typing import Any, Optional

from .config import Config, load_config, require_valid_config
from .engine import ReconciliationEngine
from .errors import ConfigurationError
from .registrar import SimplyRegistrar
from .runtime import DockerRuntime
from .service import DNSManager

logger = logging.getLogger("dokploy_dns")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_manager(config: Config) -> DNSManager:
    """Build the registrar, runtime and engine described by ``config``."""
    registrar = SimplyRegistrar(
        config.account_name, config.api_key, timeout_seconds=config.registrar_timeout
    )
    engine = ReconciliationEngine(
        runtime=DockerRuntime(),
        registrar=registrar,
        target_domain=config.target_domain,
        ttl=config.record_ttl,
        delete_delay=config.delete_delay,
        retry_policy=config.retry_policy,
        adopt_existing=config.adopt_existing_records,
    )
    return DNSManager(config, engine)


def main(config: Optional[Config] = None) -> None:
    """Main entry point."""
    try:
        config = config or load_config()
    except ConfigurationError as e:
        configure_logging(os.getenv("LOG_LEVEL", "INFO"))
        logger.error(f"Configuration validation failed: {e}")
        sys.exit(1)
    configure_logging(config.log_level)

    try:
        require_valid_config(config)
    except ConfigurationError as e:
        logger.error(f"Configuration validation failed: {e}")
        sys.exit(1)

    manager = create_manager(config)

    logger.info(f"dokploy-dns: docker -> {manager.engine.registrar.name}")
    logger.info(f"Target domain: {config.target_domain or '(self-referential)'}")
    logger.info(f"Poll interval: {config.poll_interval}s, delete delay: {config.delete_delay}s")
    logger.info(f"Delete retry policy: {config.delete_retry_policy}")
    logger.info(f"Sync mode: {config.sync_mode}")

    if config.sync_mode == "once":
        report = manager.engine.tick()
        if not report.ok:
            sys.exit(1)
        return

    # Runs on the main thread, possibly in the middle of a tick: only set
    # the stop flag here. Pending deletions are dropped when the loop exits.
    def _shutdown(signum: int, _frame: Any) -> None:
        logger.info(f"Received {signal.Signals(signum).name}, shutting down gracefully...")
        manager.stop()

    signal.signal(signal.SIGTERM, _shutdown)
    signal.signal(signal.SIGINT, _shutdown)

    try:
        manager.run_forever()
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
