from __future__ import annotations

import logging
from typing import Any

from cpirun.descriptor import PluginDescriptor
from cpirun.errors import CallTransportError, ProcessExecutionError
from cpirun.invocation import InvocationStrategy, select_strategy
from cpirun.log import log, plugin_logger
from cpirun.process import CmdResult, CmdRunner
from cpirun.protocol import CallContext, CallOutput, decode_output, encode_request


class CallRunner:
    """Calls methods on a provider plugin, one process per call.

    A call either raises `CallTransportError` (the plugin could not be run, exited
    with a failure status, or printed an invalid response) or returns a `CallOutput`.
    A returned output may still carry an `error` from the plugin; that is for the
    caller to act on.

    Args:
        cmd_runner: Starts the plugin process.
        descriptor: Where the plugin lives.
        strategy: How to start the plugin. Chosen from the host platform if None.
    """

    def __init__(
        self,
        cmd_runner: CmdRunner,
        descriptor: PluginDescriptor,
        strategy: InvocationStrategy | None = None,
    ) -> None:
        self.cmd_runner = cmd_runner
        self.descriptor = descriptor
        self.strategy = strategy if strategy is not None else select_strategy()

    def run(self, context: CallContext, method: str, *arguments: Any) -> CallOutput:
        prefix = f"[cpi:{method}]"
        request = encode_request(method, arguments, context)
        spec = self.strategy.build(self.descriptor, request)

        log.debug(
            "%s external command: %s %s (env: %s, isolated: %s)",
            prefix,
            spec.name,
            " ".join(spec.args),
            sorted(spec.env) if spec.env else None,
            spec.use_isolated_env,
        )
        log.debug("%s request: %s", prefix, request.decode("utf-8"))

        try:
            result = self.cmd_runner.run_complex_command(spec)
        except ProcessExecutionError as exc:
            log.error("%s could not run %s: %s", prefix, spec.name, exc)
            raise CallTransportError(
                f"{prefix} Executing external CPI command: {exc}", method=method
            ) from exc

        stderr = _log_stderr(method, result)
        if result.exit_status != 0:
            log.error("%s plugin exited with status %d", prefix, result.exit_status)
            raise CallTransportError(
                f"{prefix} External CPI command exited with status "
                f"{result.exit_status}: {stderr.strip()}",
                method=method,
                exit_status=result.exit_status,
                stderr=stderr,
            )

        try:
            output = decode_output(result.stdout)
        except ValueError as exc:
            log.error("%s invalid plugin response: %s", prefix, exc)
            raise CallTransportError(
                f"{prefix} Unmarshalling external CPI command output: {exc}",
                method=method,
                exit_status=result.exit_status,
                stderr=stderr,
            ) from exc

        if output.log:
            plugin_logger(method, "log").debug(output.log)
        if output.error is not None:
            log.info(
                "%s plugin reported error '%s': %s",
                prefix,
                output.error.type,
                output.error.message,
            )
        return output


def _log_stderr(method: str, result: CmdResult) -> str:
    text = result.stderr.decode("utf-8", errors="replace")
    logger = plugin_logger(method, "stderr")
    if logger.isEnabledFor(logging.DEBUG):
        for line in text.splitlines():
            logger.debug(line)
    return text
