"""Error taxonomy for the assessment engine.

Propagation rules:

* ``ProbeError`` -- a single metric probe failed. Absorbed by the metric
  calculator (logged, probe skipped).
* ``PersistenceError`` -- an assessment was computed but could not be saved.
  Absorbed by the table assessor (logged, result still returned).
* ``TableNotFound`` -- raised by the catalog reader. Fatal for a single-table
  request, contained per table inside a catalog run.
* ``StorageUnavailable`` -- the store cannot be reached. Fatal for the
  enclosing request or task.
* ``UnrecognizedTask`` -- a task name outside the known task set.
* ``DuplicateTask`` -- a correlation id reused while its task is in flight.
  Raised by the dispatcher on submit; the envelope is rejected.
"""


class EngineError(Exception):
    """Base class for all assessment engine errors."""


class StorageUnavailable(EngineError):
    """The relational store is unreachable or not connected."""


class TableNotFound(EngineError, LookupError):
    """The requested table does not exist or is excluded from assessment."""

    def __init__(self, table_name: str) -> None:
        self.table_name = table_name
        super().__init__(f"Table '{table_name}' not found")


class ProbeError(EngineError):
    """A single metric probe query failed or timed out."""

    def __init__(self, table_name: str, column: str, reason: str) -> None:
        self.table_name = table_name
        self.column = column
        self.reason = reason
        super().__init__(f"Probe on {table_name}.{column} failed: {reason}")


class PersistenceError(EngineError):
    """An assessment could not be written to the history table."""


class UnrecognizedTask(EngineError):
    """The task name is not part of the known task set."""

    def __init__(self, task: str) -> None:
        self.task = task
        super().__init__(f"Unrecognized task '{task}'")


class DuplicateTask(EngineError):
    """The requester already has an outstanding task with this correlation id."""

    def __init__(self, requester: str, correlation_id: str) -> None:
        self.requester = requester
        self.correlation_id = correlation_id
        super().__init__(
            f"Task '{correlation_id}' from '{requester}' is already in flight"
        )
