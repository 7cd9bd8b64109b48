"""
Folder watcher: emits file.new.detected for each new video dropped into
WATCH_FOLDER.

Polling based. Files already present when the watcher starts are ignored,
and a new file is only reported once its size and mtime have been stable
for WATCH_STABILITY_THRESHOLD seconds (copies still in progress are skipped).

Reported names are recorded in the fileWatcher/knownFiles state entry and
never reported again, even if the file is deleted and recreated.
"""

import asyncio
import contextlib
import fnmatch
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from autopublisher import config
from autopublisher.core.events import EventBus
from autopublisher.core.pipeline import topics
from autopublisher.core.state import KNOWN_FILES_KEY, WATCHER_SCOPE, TraceStore

logger = logging.getLogger(__name__)

IGNORED_PATTERNS = ("*.tmp", "~*", ".DS_Store", "Thumbs.db")

FileSignature = Tuple[int, float]


def is_ignored(name: str) -> bool:
    return name.startswith(".") or any(fnmatch.fnmatch(name, pattern) for pattern in IGNORED_PATTERNS)


class FolderWatcher:
    def __init__(
        self,
        bus: EventBus,
        store: TraceStore,
        folder: Union[str, Path, None] = None,
        poll_interval: Optional[float] = None,
        stability_threshold: Optional[float] = None,
    ):
        self.bus = bus
        self.store = store
        self.folder = Path(folder or config.WATCH_FOLDER)
        self.poll_interval = poll_interval if poll_interval is not None else config.WATCH_POLL_INTERVAL
        self.stability_threshold = (
            stability_threshold if stability_threshold is not None else config.WATCH_STABILITY_THRESHOLD
        )
        self._task: Optional[asyncio.Task] = None
        self._baseline: Set[str] = set()
        # name -> (signature, monotonic time the signature was first seen)
        self._pending: Dict[str, Tuple[FileSignature, float]] = {}

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _list_files(self) -> Dict[str, FileSignature]:
        files: Dict[str, FileSignature] = {}
        for path in self.folder.iterdir():
            try:
                if not path.is_file():
                    continue
                stat = path.stat()
            except FileNotFoundError:
                continue
            files[path.name] = (stat.st_size, stat.st_mtime)
        return files

    async def take_baseline(self) -> None:
        """Mark every file currently in the folder as pre-existing."""
        self.folder.mkdir(parents=True, exist_ok=True)
        self._baseline = set(await asyncio.to_thread(self._list_files))
        self._pending.clear()

    async def start(self) -> bool:
        """Start watching. Returns False if this watcher is already running."""
        if self.is_running:
            logger.debug("File watcher already running for %s", self.folder)
            return False
        await self.take_baseline()
        self._task = asyncio.create_task(self._run(), name="folder-watcher")
        logger.info("File watcher started on %s (%d existing files ignored)", self.folder, len(self._baseline))
        return True

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("File watcher stopped on %s", self.folder)

    async def _run(self) -> None:
        while True:
            try:
                await self.scan_once()
            except Exception:
                logger.exception("File watcher scan failed on %s", self.folder)
            await asyncio.sleep(self.poll_interval)

    async def scan_once(self, now: Optional[float] = None) -> List[str]:
        """
        Check the folder once and report files that became stable.

        Returns:
            Names for which file.new.detected was emitted
        """
        now = time.monotonic() if now is None else now
        files = await asyncio.to_thread(self._list_files)

        # a baseline file that disappears and comes back counts as new
        self._baseline &= set(files)
        for name in list(self._pending):
            if name not in files:
                del self._pending[name]

        emitted: List[str] = []
        for name, signature in sorted(files.items()):
            if name in self._baseline or is_ignored(name):
                continue
            seen = self._pending.get(name)
            if seen is None or seen[0] != signature:
                self._pending[name] = (signature, now)
                continue
            if now - seen[1] < self.stability_threshold:
                continue
            # a failed report stays pending and is retried on the next scan
            reported = await self.report(name, self.folder / name)
            del self._pending[name]
            # never looked at again in this process; knownFiles covers restarts
            self._baseline.add(name)
            if reported:
                emitted.append(name)
        return emitted

    async def report(self, name: str, path: Path) -> bool:
        """Record name in knownFiles and emit, unless it was reported before."""

        def _remember(snapshot: Dict[str, Any]) -> Dict[str, Any]:
            known = snapshot.get(KNOWN_FILES_KEY) or []
            if name in known:
                return {}
            return {KNOWN_FILES_KEY: known + [name]}

        if not await self.store.transact(WATCHER_SCOPE, _remember):
            logger.info("Skipping already processed file: %s", name)
            return False

        logger.info("New file detected: %s", path)
        try:
            await self.bus.emit(topics.FILE_NEW_DETECTED, {"fileName": name, "filePath": str(path)})
        except Exception:
            await self.store.transact(WATCHER_SCOPE, lambda snapshot: self._forget(snapshot, name))
            raise
        return True

    @staticmethod
    def _forget(snapshot: Dict[str, Any], name: str) -> Dict[str, Any]:
        known = snapshot.get(KNOWN_FILES_KEY) or []
        if name not in known:
            return {}
        return {KNOWN_FILES_KEY: [n for n in known if n != name]}


_watcher: Optional[FolderWatcher] = None


def get_folder_watcher(bus: EventBus, store: TraceStore) -> FolderWatcher:
    """Process-wide watcher; the first caller's bus and store win."""
    global _watcher
    if _watcher is None:
        _watcher = FolderWatcher(bus, store)
    return _watcher
