"""Error taxonomy for supertransaction runs.

Every error carries enough context (amounts, addresses, chain id, hash) to
diagnose a failed run without re-querying chain state.

Exit codes are used by the CLI:
- 2: ConfigurationError
- 3: InsufficientFunds
- 4: QuoteRejected
- 5: SubmissionError
- 6: TimedOut (transaction may still confirm later)
- 7: SupertransactionFailed
- 8: NetworkError
- 9: LockTimeoutError (another run holds the companion)
"""

from typing import Optional


class SupertransactionError(Exception):
    """Base class for all supertransaction errors."""

    exit_code = 1
    kind = "SupertransactionError"


class ConfigurationError(SupertransactionError):
    """Raised when settings, signer or chain configuration are invalid. Fatal."""

    exit_code = 2
    kind = "ConfigurationError"


class InvalidInstructionError(SupertransactionError, ValueError):
    """Raised for malformed composer input (programmer error)."""

    kind = "InvalidInstructionError"


class InvalidStateTransition(SupertransactionError):
    """Raised when an orchestrator operation is called in the wrong state."""

    kind = "InvalidStateTransition"

    def __init__(self, operation: str, state: str):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} while supertransaction is {state}")


class InsufficientFunds(SupertransactionError):
    """Raised when an account balance is below the amount a run needs."""

    exit_code = 3
    kind = "InsufficientFunds"

    def __init__(
        self,
        account: str,
        token: str,
        observed: int,
        required: int,
        chain_id: Optional[int] = None,
    ):
        self.account = account
        self.token = token
        self.observed = observed
        self.required = required
        self.chain_id = chain_id
        super().__init__(
            f"Insufficient balance of {token} on {account} (chain {chain_id}): "
            f"have {observed}, need {required}"
        )


class QuoteRejected(SupertransactionError):
    """Raised when the coordinator cannot price or validate a batch."""

    exit_code = 4
    kind = "QuoteRejected"

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Quote rejected{detail}: {message}")


class SubmissionError(SupertransactionError):
    """Raised when the coordinator refuses a quote at execute time."""

    exit_code = 5
    kind = "SubmissionError"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        quote_hash: Optional[str] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.quote_hash = quote_hash
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"Submission of quote {quote_hash} refused{detail}: {message}")


class TimedOut(SupertransactionError):
    """Raised when no terminal receipt arrived within the wait window.

    Not a failure: the supertransaction may still confirm. The hash is kept
    so the caller can re-poll later.
    """

    exit_code = 6
    kind = "TimedOut"

    def __init__(self, supertx_hash: str, waited_seconds: float):
        self.hash = supertx_hash
        self.waited_seconds = waited_seconds
        super().__init__(
            f"Supertransaction {supertx_hash} not settled after {waited_seconds:.0f}s"
        )


class SupertransactionFailed(SupertransactionError):
    """Raised by the supply flow when the coordinator reports a failed receipt."""

    exit_code = 7
    kind = "SupertransactionFailed"

    def __init__(self, supertx_hash: str, status: str):
        self.hash = supertx_hash
        self.status = status
        super().__init__(f"Supertransaction {supertx_hash} failed with status {status}")


class NetworkError(SupertransactionError):
    """Transport-level failure talking to a chain node or the coordinator.

    ``retry_safe`` is True for read-only operations. Writes and submissions
    must not be blindly retried since that risks a duplicate submission.
    """

    exit_code = 8
    kind = "NetworkError"

    def __init__(self, message: str, retry_safe: bool = True):
        self.message = message
        self.retry_safe = retry_safe
        super().__init__(message)
