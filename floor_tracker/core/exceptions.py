"""Error types shared by the sampler, the recompute pass and the API."""


class TrackerError(Exception):
    """Base class for floor tracker errors."""


class UpstreamFetchError(TrackerError):
    """A price endpoint was unreachable or returned an unusable payload."""


class StoreError(TrackerError):
    """The spreadsheet store could not be read or written."""


class SampleValidationError(TrackerError, ValueError):
    """A stored row could not be parsed into a price sample."""
