"""Error taxonomy for the fee sweeper.

Decryption failure is deliberately absent: a note that does not decrypt under
the operator key is classified as undecryptable, not raised.
"""


class FeeSweeperError(Exception):
    """Base class for all fee sweeper errors."""


class ChainQueryError(FeeSweeperError):
    """The chain RPC could not answer a query. Transient, retried next pass."""


class CheckpointRegressionError(FeeSweeperError):
    """An attempt was made to move a checkpoint backwards."""

    def __init__(self, chain_id: int, current: int, requested: int) -> None:
        self.chain_id = chain_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"checkpoint for chain {chain_id} cannot move from {current} to {requested}"
        )


class StoreError(FeeSweeperError):
    """The note database could not complete an operation."""


class TransportError(FeeSweeperError):
    """The relayer could not be reached."""


class MalformedResponseError(FeeSweeperError):
    """The relayer accepted a request but its response could not be read.

    Never retried: the request may already have taken effect.
    """


class AuthSigningError(FeeSweeperError):
    """A request signature could not be constructed."""


class RelayerRejected(FeeSweeperError):
    """The relayer answered with a non-success HTTP status."""

    def __init__(self, status_code: int, body: str, path: str = "") -> None:
        self.status_code = status_code
        self.body = body
        self.path = path
        super().__init__(f"relayer returned {status_code} for {path}: {body}")


class TaskTimeoutError(FeeSweeperError):
    """A relayer task did not complete within the maximum poll duration."""

    def __init__(self, task_id: str, waited: float) -> None:
        self.task_id = task_id
        self.waited = waited
        super().__init__(f"task {task_id} still running after {waited:.1f}s")


class TaskFailedError(FeeSweeperError):
    """The relayer reported that a task finished in error."""

    def __init__(self, task_id: str, detail: str) -> None:
        self.task_id = task_id
        self.detail = detail
        super().__init__(f"task {task_id} failed: {detail}")


__all__ = [
    "AuthSigningError",
    "ChainQueryError",
    "CheckpointRegressionError",
    "FeeSweeperError",
    "MalformedResponseError",
    "RelayerRejected",
    "StoreError",
    "TaskFailedError",
    "TaskTimeoutError",
    "TransportError",
]
