"""Config file watcher — applies capture policy edits without a restart.

Watches the session's config file with watchfiles in a background thread.
When the file changes, its policy fields (truncation limit, body capture
flags, redacted headers) are re-read and applied as a policy patch, exactly
as if an observer had sent them in a ``control`` message.  Other fields
(ports, buffer sizes) only take effect on the next start.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

from watchfiles import Change

from wiretap.banner import print_warning
from wiretap.config_loader import read_policy_patch

if TYPE_CHECKING:
    from wiretap.capture.policy import CapturePolicy


def is_config_change(change: Change, changed_path: str, config_path: Path) -> bool:
    """Whether a raw watchfiles change concerns *config_path*."""
    if change == Change.deleted:
        return False
    return Path(changed_path).resolve() == config_path


class PolicyFileWatcher:
    """Re-applies policy fields from a config file whenever it changes.

    Args:
        path: The config file to watch.
        policy: The session's capture policy.
        on_change: Called after a patch actually changed the policy.

    """

    def __init__(
        self,
        path: Path,
        policy: CapturePolicy,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self._path = path.resolve()
        self._policy = policy
        self._on_change = on_change
        self._halt = threading.Event()
        self._worker: threading.Thread | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_running(self) -> bool:
        worker = self._worker
        return worker is not None and worker.is_alive()

    def start(self) -> None:
        """Begin watching on a daemon thread.  No-op when already watching."""
        if self.is_running:
            return
        self._halt.clear()
        self._worker = threading.Thread(
            target=self._follow, name="wiretap-config-watcher", daemon=True
        )
        self._worker.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop watching; returns once the thread has exited (or *timeout*)."""
        self._halt.set()
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.join(timeout)

    def reload(self) -> bool:
        """Read the file and apply its policy fields now.

        Returns:
            True if the policy changed.

        """
        patch = read_policy_patch(self._path)
        if not patch or not self._policy.apply_patch(patch):
            return False
        if self._on_change is not None:
            self._on_change()
        return True

    def _follow(self) -> None:
        from watchfiles import watch

        directory = self._path.parent
        try:
            for batch in watch(
                directory, stop_event=self._halt, debounce=300, step=100, recursive=False
            ):
                if any(is_config_change(kind, changed, self._path) for kind, changed in batch):
                    self.reload()
        except Exception as exc:
            print_warning(f"config watcher stopped: {exc}")
