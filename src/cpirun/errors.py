from __future__ import annotations


class CpiRunError(RuntimeError):
    """Base class for errors raised while calling a provider plugin."""


class CallConstructionError(CpiRunError, ValueError):
    """The call could not be built: bad method name or unencodable arguments. Raised
    before any process is started."""


class ProcessExecutionError(CpiRunError):
    """A command runner could not run the process to completion (not found, not
    executable, timed out, killed)."""


class CallTransportError(CpiRunError):
    """The call mechanism itself failed: the plugin could not be run, exited with a
    failure status, or printed something that is not a valid response.

    Attributes:
        method: The plugin method being called.
        exit_status: The plugin's exit status, if it got far enough to have one.
        stderr: Whatever the plugin wrote to stderr, if it was captured.
    """

    def __init__(
        self,
        message: str,
        *,
        method: str,
        exit_status: int | None = None,
        stderr: str | None = None,
    ) -> None:
        super().__init__(message)
        self.method = method
        self.exit_status = exit_status
        self.stderr = stderr


class PluginCallError(CpiRunError):
    """The plugin ran and reported that the requested operation failed."""

    def __init__(
        self, method: str, error_type: str, message: str, ok_to_retry: bool = False
    ) -> None:
        super().__init__(
            f"CPI error '{error_type}' with message '{message}' in '{method}' CPI method"
        )
        self.method = method
        self.error_type = error_type
        self.message = message
        self.ok_to_retry = ok_to_retry
