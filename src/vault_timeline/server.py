"""
Vault timeline server entry point.

Startup sequence:
1. Build TimelineConfig from the environment
2. Initialize VaultCache (full vault scan)
3. Start cache background worker thread
4. Start VaultWatcher daemon thread
5. Start REST API server in background thread (if API_ENABLED)
6. Register all MCP tools
7. Run MCP server (stdio transport)
"""

import logging
import sys
import threading

from mcp.server.fastmcp import FastMCP

from vault_timeline.cache.vault_cache import VaultCache
from vault_timeline.config import TimelineConfig
from vault_timeline.errors import ConfigError
from vault_timeline.tools import register_timeline_tools
from vault_timeline.watcher.vault_watcher import VaultWatcher

log = logging.getLogger(__name__)


def _start_api_server(cache, port: int) -> None:
    """Run the FastAPI/uvicorn server in a daemon thread."""
    import uvicorn

    from vault_timeline.api.app import create_app

    app = create_app(cache)
    log.info("Starting REST API on port %d", port)
    uvicorn.run(app, host="0.0.0.0", port=port, log_level="warning")


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        config = TimelineConfig.from_env()
    except ConfigError as e:
        log.error("%s", e)
        sys.exit(1)

    vault_root = config.vault_root
    if vault_root is None:
        log.error("VAULT_ROOT environment variable is not set")
        sys.exit(1)
    if not vault_root.is_dir():
        log.error("VAULT_ROOT does not exist or is not a directory: %s", vault_root)
        sys.exit(1)

    log.info("Vault root: %s", vault_root)
    log.info("Excluded dirs: %s", config.exclude_dirs)
    log.info("Field format: %s", config.field_format)

    # Initialize cache and perform full vault scan
    cache = VaultCache()
    cache.initialize(vault_root, config)

    # Start background worker that drains the update queue
    cache.start_worker()

    # Start file system watcher
    watcher = VaultWatcher(cache, vault_root, poll_interval=config.poll_interval)
    watcher.start()

    # Start REST API in a daemon thread
    if config.api_enabled:
        api_thread = threading.Thread(
            target=_start_api_server, args=(cache, config.api_port), daemon=True
        )
        api_thread.start()

    # Create MCP server and register tools
    mcp = FastMCP("vault-timeline")
    register_timeline_tools(mcp, cache)

    log.info("Starting vault-timeline server")
    try:
        mcp.run(transport="stdio")
    finally:
        watcher.stop()
        cache.stop_worker()


if __name__ == "__main__":
    main()
