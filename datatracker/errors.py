"""
DataTracker Errors
==================
Failure taxonomy of the sampling / aggregation / persistence pipeline.

None of these are allowed to escape the periodic loops: each one is
absorbed where it is raised or caught and logged by the tracker.
"""


class DataTrackerError(Exception):
    pass


class SamplingUnavailable(DataTrackerError):
    """OS counter query failed; the tick is skipped."""

    def __init__(self, reason):
        self.reason = reason
        super().__init__(f"Network counters unavailable: {reason}")


class QueryUnavailable(DataTrackerError):
    """Network identity query failed; the last known identity is kept."""

    def __init__(self, reason):
        self.reason = reason
        super().__init__(f"Network identity unavailable: {reason}")


class PersistenceCorrupt(DataTrackerError):
    def __init__(self, path, reason):
        self.path = path
        self.reason = reason
        super().__init__(f"Data file {path} unreadable: {reason}")


class PersistenceWriteFailed(DataTrackerError):
    def __init__(self, path, reason):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to write data file {path}: {reason}")
