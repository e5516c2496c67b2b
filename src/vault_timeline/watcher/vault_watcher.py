"""
Vault file system watcher, polling-based.

Docker volume mounts from Windows do not forward filesystem events (inotify)
into the container, so we use periodic mtime polling instead of watchdog's
event-based Observer.

The watcher runs a daemon thread that:
1. Walks VAULT_ROOT every POLL_INTERVAL seconds
2. Compares markdown mtimes against the previous poll
3. Enqueues refresh for any files that changed, appeared, or disappeared
4. Otherwise asks the cache to reload, which only rebuilds on a new day
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Optional

log = logging.getLogger(__name__)


class VaultWatcher:
    """
    Polling-based vault watcher.

    Usage:
        watcher = VaultWatcher(cache, vault_root, poll_interval=2.0)
        watcher.start()
        ...
        watcher.stop()
    """

    def __init__(self, cache, vault_root: Path, poll_interval: float = 2.0) -> None:
        self._cache = cache
        self._vault_root = Path(vault_root).resolve()
        self._poll_interval = poll_interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Known files and their mtimes from the last poll cycle
        self._known_files: Dict[Path, float] = {}

    def start(self) -> None:
        """Start the polling thread (daemon)."""
        log.info("Starting vault watcher (polling every %.1fs)", self._poll_interval)
        self._known_files = self.snapshot()

        self._thread = threading.Thread(
            target=self._poll_loop, daemon=True, name="vault-watcher"
        )
        self._thread.start()

    def stop(self) -> None:
        """Signal the poll thread to stop and wait for it."""
        log.info("Stopping vault watcher")
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=self._poll_interval + 2)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _poll_loop(self) -> None:
        """Main polling loop; runs until stop_event is set."""
        while not self._stop_event.is_set():
            self._stop_event.wait(self._poll_interval)
            if self._stop_event.is_set():
                break
            try:
                self.check_for_changes()
            except Exception:
                log.exception("Error during poll cycle")

    def check_for_changes(self) -> int:
        """Single poll cycle. Returns the number of refreshes enqueued."""
        current_files = self.snapshot()
        changed = 0

        for path, mtime in current_files.items():
            old_mtime = self._known_files.get(path)
            if old_mtime is None:
                log.debug("New markdown file detected: %s", path)
                self._cache.enqueue_refresh(path)
                changed += 1
            elif mtime > old_mtime:
                log.debug("Modified markdown file: %s", path)
                self._cache.enqueue_refresh(path)
                changed += 1

        for path in self._known_files:
            if path not in current_files:
                log.debug("Deleted markdown file: %s", path)
                self._cache.enqueue_refresh(path)
                changed += 1

        self._known_files = current_files
        if not changed:
            self._cache.reload()
        return changed

    def snapshot(self) -> Dict[Path, float]:
        """Walk the vault and return {path: mtime} for all tracked markdown files."""
        snapshot: Dict[Path, float] = {}
        try:
            for path in self._vault_root.rglob("*.md"):
                if not self._cache.is_tracked(path):
                    continue
                try:
                    snapshot[path] = path.stat().st_mtime
                except OSError:
                    pass
        except OSError:
            log.exception("Error walking vault for markdown files")
        return snapshot
