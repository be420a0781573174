# Root folder: pulse/errors.py
#
# The three failure kinds the engine knows about.
# Storage and dispatch code raise these, callers decide what to do.


class DataSourceUnavailable(Exception):
    """Event store could not be reached. Fatal to the current call."""


class MalformedRecord(Exception):
    """One stored record is missing or mistyped fields. Skipped, never fatal."""


class DispatchFailure(Exception):
    """A notifier could not deliver an alert. Logged, never retried."""
