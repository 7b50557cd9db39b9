"""
Exception types for the nomad resource collector.

Query failures are collected per cluster instead of aborting a cycle, so every
error carries enough context (cluster, job, operation) to be reported on its own.
"""

from typing import Optional


class CollectorError(Exception):
    """Base class for all collector errors."""

    def __init__(self, message: str, cluster: Optional[str] = None,
                 job_id: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.cluster = cluster
        self.job_id = job_id
        self.operation = operation

    def with_context(self, cluster: Optional[str] = None, job_id: Optional[str] = None,
                     operation: Optional[str] = None) -> "CollectorError":
        """Fill in missing context fields and return self."""
        if self.cluster is None:
            self.cluster = cluster
        if self.job_id is None:
            self.job_id = job_id
        if self.operation is None:
            self.operation = operation
        return self

    def describe(self) -> str:
        """Single-line description used for logs and diagnostic output."""
        parts = [type(self).__name__]
        if self.cluster:
            parts.append(f"cluster={self.cluster}")
        if self.job_id:
            parts.append(f"job={self.job_id}")
        if self.operation:
            parts.append(f"op={self.operation}")
        return f"{' '.join(parts)}: {self.message}"


class TransportError(CollectorError):
    """Connection failure, timeout or non-2xx HTTP status."""
    pass


class DecodeError(CollectorError):
    """Malformed or unexpected response payload."""
    pass


class ClusterCollectionError(CollectorError):
    """A whole cluster could not be collected (e.g. job listing failed)."""
    pass


class ConfigError(CollectorError):
    """Invalid or unreadable collector configuration."""
    pass
