from typing import Optional
from pydantic import BaseModel

class PassDiagnostic(BaseModel):
    """
    Standardized error record for one failed translation pass in a sync cycle.
    """
    pass_name: str
    message: str
    error_class: str = "Exception"
    namespace: Optional[str] = None
    resource: Optional[str] = None
    severity: str = "error" # 'error', 'warning'

    def __str__(self) -> str:
        loc = self.pass_name
        if self.resource:
            loc += f" {self.namespace}/{self.resource}" if self.namespace else f" {self.resource}"
        return f"[{self.error_class}] {self.message} (in {loc})"

class PorticoError(Exception):
    """Base class for controller errors."""

class ConfigurationError(PorticoError):
    """
    Startup-fatal error: missing base configuration, unusable directories,
    or backend clients that cannot be initialized.
    """

class TransactionError(PorticoError):
    """
    Raised when a configuration transaction cannot be opened or committed.
    Aborts only the current sync cycle.
    """
    def __init__(self, message: str, transaction_id: str = None):
        self.message = message
        self.transaction_id = transaction_id
        ctx = f" (transaction '{transaction_id}')" if transaction_id else ""
        super().__init__(f"Transaction Error{ctx}: {message}")

class TransactionAlreadyActiveError(TransactionError):
    pass

class NoActiveTransactionError(TransactionError):
    def __init__(self, message: str = "no active transaction"):
        super().__init__(message)

class SupervisorError(PorticoError):
    """Runtime failure while spawning or signalling the managed proxy process."""
    def __init__(self, message: str, action: str = None):
        self.message = message
        self.action = action
        ctx = f" during '{action}'" if action else ""
        super().__init__(f"Supervisor Error{ctx}: {message}")

class UnknownActionError(SupervisorError):
    """Definitional error: the lifecycle action name is not recognized."""
    def __init__(self, action: str):
        super().__init__(f"unknown command '{action}'", action=action)

class ServerStateError(PorticoError):
    """Server state could not be queried or persisted."""
