from __future__ import annotations


class FlowSyncError(RuntimeError):
    pass


class RemoteAuthError(FlowSyncError):
    """Credentials missing or rejected by the task service."""


class RemoteTransportError(FlowSyncError):
    """Network failure or unexpected HTTP status from the task service."""


class MalformedResponseError(FlowSyncError):
    """The task service answered 2xx with a payload we cannot parse."""


class LocalStoreError(FlowSyncError):
    """The batched write-back to the local database failed."""
