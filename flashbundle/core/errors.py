"""
Error taxonomy for bundle submission

Every failure surfaced by flashbundle derives from FlashbundleError:
- BundleValidationError: malformed or incomplete bundle, raised before any network call
- SigningError: unusable searcher identity key, raised at construction
- RelayError: anything that went wrong talking to a relay
- InclusionQueryError: the inclusion tracker gave up querying the chain

A bundle that simply misses its target block is NOT an error; see
InclusionResult in pending_bundle.py.
"""

from typing import Any, Optional


class FlashbundleError(Exception):
    """Base class for all flashbundle errors"""


# Validation

class BundleValidationError(FlashbundleError, ValueError):
    """Raised when a bundle cannot be submitted as built"""


class EmptyBundleError(BundleValidationError):
    """The bundle holds no transactions"""

    def __init__(self) -> None:
        super().__init__("Bundle must contain at least one transaction")


class MissingTargetBlockError(BundleValidationError):
    """No target block was set"""

    def __init__(self) -> None:
        super().__init__("Bundle target block is not set")


class MissingSimulationBlockError(BundleValidationError):
    """Simulation was requested without a state block"""

    def __init__(self) -> None:
        super().__init__("Bundle simulation block is not set")


class StaleTargetBlockError(BundleValidationError):
    """The target block is already behind the chain head"""

    def __init__(self, target_block: int, current_block: int) -> None:
        self.target_block = target_block
        self.current_block = current_block
        super().__init__(
            f"Target block {target_block} is behind current block {current_block}"
        )


class InconsistentBundleError(BundleValidationError):
    """Timing or block-range fields contradict each other"""


# Signing

class SigningError(FlashbundleError):
    """Raised when the searcher identity key is unusable"""


# Relay

class RelayError(FlashbundleError):
    """Base class for relay communication failures"""


class RelayTransportError(RelayError):
    """Connection failure, timeout, or HTTP error without a usable body"""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        self.status = status
        super().__init__(message)


class RelayProtocolError(RelayError):
    """The relay answered with a well-formed JSON-RPC error object"""

    def __init__(self, code: Optional[int], message: str, data: Any = None) -> None:
        self.code = code
        self.message = message
        self.data = data
        super().__init__(f"Relay error {code}: {message}")


class NonConformantResponseError(RelayError):
    """The relay body is not a JSON-RPC envelope (some relays answer in plain text)"""

    def __init__(self, text: str, status: Optional[int] = None, reason: str = "") -> None:
        self.text = text
        self.status = status
        detail = f" ({reason})" if reason else ""
        super().__init__(f"Non-conformant relay response{detail}: {text}")


class ResponseDecodeError(NonConformantResponseError):
    """A JSON-RPC result carried a field that cannot be decoded"""


# Inclusion tracking

class InclusionQueryError(FlashbundleError):
    """The inclusion tracker stopped before it could resolve the bundle"""

    def __init__(self, message: str, last_error: Optional[BaseException] = None) -> None:
        self.last_error = last_error
        super().__init__(message)
