"""Holder of the currently published snapshot."""

import logging
import threading

from ..utils.metrics import Snapshot


class SnapshotStore:
    """
    Atomic replace-on-publish holder for the latest snapshot.

    ``current()`` is a single reference read and never blocks. ``publish()``
    swaps the reference in one assignment; the lock only orders concurrent
    publishers and is never taken by readers.

    Publish policy:
      * an empty candidate does not replace a non-empty snapshot unless
        ``publish_empty`` is set, so metrics stay visible (stale) while every
        target is failing;
      * a candidate older than the published one is rejected, so generation
        times never go backwards.
    """

    def __init__(self, publish_empty: bool = False, logger: logging.Logger = None):
        self.publish_empty = publish_empty
        self.logger = (logger or logging.getLogger(__name__)).getChild("SnapshotStore")
        self._snapshot = Snapshot.empty()
        self._write_lock = threading.Lock()
        self.published_count = 0

    def current(self) -> Snapshot:
        return self._snapshot

    def publish(self, candidate: Snapshot) -> bool:
        """
        Make ``candidate`` the visible snapshot.

        Args:
            candidate: Fully built snapshot of one cycle

        Returns:
            bool: True if published, False if the previous snapshot was retained
        """
        with self._write_lock:
            previous = self._snapshot

            if candidate.generated_at < previous.generated_at:
                self.logger.warning(
                    f"Rejected out-of-order snapshot generated at {candidate.generated_at:.3f} "
                    f"(current {previous.generated_at:.3f})"
                )
                return False

            if candidate.is_empty() and not previous.is_empty() and not self.publish_empty:
                self.logger.warning(
                    f"Empty candidate, keeping previous snapshot with {len(previous)} series "
                    f"from {previous.generated_at:.3f}"
                )
                return False

            self._snapshot = candidate
            self.published_count += 1

        self.logger.debug(f"Published snapshot with {len(candidate)} series")
        return True
