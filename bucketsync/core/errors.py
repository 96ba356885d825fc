from __future__ import annotations


class SyncError(RuntimeError):
    """Base class for errors raised by the sync engine."""


class ConfigInvalid(SyncError):
    """Settings that cannot describe a usable bucket and local directory pair."""


class RemoteListError(SyncError):
    """Listing the bucket failed; no partial remote inventory is used."""

    def __init__(self, prefix: str, error: BaseException):
        self.prefix = prefix
        self.error = error
        super().__init__(f"remote_list_failed prefix={prefix!r}: {error}")


class FirstBatchError(SyncError):
    """A unit operation inside an execution batch failed.

    Operations already applied by earlier batches (or by siblings in the
    failing batch) are not rolled back.
    """

    def __init__(self, phase: str, logical_path: str, error: BaseException, report=None):
        self.phase = phase
        self.logical_path = logical_path
        self.error = error
        # ExecutionReport of what was applied before the failure.
        self.report = report
        super().__init__(f"{phase}_failed path={logical_path}: {error}")


class ContentUnreadable(OSError):
    """A local file could not be read.

    Never fails a sync: fingerprinting records an unknown hash and uploads
    are skipped.
    """

    def __init__(self, logical_path: str, error: BaseException | None = None):
        self.logical_path = logical_path
        self.error = error
        detail = f": {error}" if error is not None else ""
        super().__init__(f"content_unreadable path={logical_path}{detail}")
