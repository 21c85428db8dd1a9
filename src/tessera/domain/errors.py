"""Domain-layer error definitions."""

# ============================================================================
#                           General errors
# ============================================================================


class TesseraError(Exception):
    """Base class for TESSERA errors."""


class UnitDefinitionError(TesseraError):
    """Raised when a test unit is declared with invalid attributes."""


class DuplicateUnitError(UnitDefinitionError):
    """Raised when two units in one run share a name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Test unit '{name}' is declared more than once.")
        self.name = name


class InvalidRunConfigError(TesseraError):
    """Raised when a run configuration value is out of range."""


# ============================================================================
#                   Lifecycle control signals
# ============================================================================


class UnitAssertionError(AssertionError):
    """A deliberate check inside a test body did not hold."""


class SkipUnit(Exception):  # noqa: N818
    """Raised from a hook or body to mark the execution as skipped."""

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason)
        self.reason = reason


# ============================================================================
#                   Mock related errors
# ============================================================================


class MockError(TesseraError):
    """Base class for mock registry errors."""


class MockRegistryClosedError(MockError):
    """Raised when a mock is requested from a discarded registry scope."""


class UnknownMethodError(MockError, AttributeError):
    """Raised when an expectation names a method the capability does not have."""

    def __init__(self, capability: str, method: str) -> None:
        super().__init__(f"Capability {capability} has no method '{method}'.")
        self.capability = capability
        self.method = method


class MockViolationError(MockError):
    """A substitute was used in a way its expectations do not allow."""


class UnexpectedCallError(MockViolationError):
    """Raised by a strict mock when a call matches no undischarged expectation.

    Attributes:
        capability (str): Identifier of the substituted capability.
        method (str): Name of the method that was called.
        arguments (dict): Bound arguments received by the call.
    """

    def __init__(self, capability: str, method: str, arguments: dict) -> None:
        rendered = ", ".join(f"{k}={v!r}" for k, v in arguments.items())
        super().__init__(f"Unexpected call {capability}.{method}({rendered})")
        self.capability = capability
        self.method = method
        self.arguments = arguments
