from __future__ import annotations

import abc
import os
import subprocess
from dataclasses import dataclass

from cpirun.errors import ProcessExecutionError
from cpirun.invocation import ProcessSpec
from cpirun.log import log


@dataclass(frozen=True)
class CmdResult:
    stdout: bytes
    stderr: bytes
    exit_status: int


class CmdRunner(abc.ABC):
    """Starts a process, feeds it stdin, and collects what it printed."""

    @abc.abstractmethod
    def run_complex_command(self, spec: ProcessSpec) -> CmdResult:
        """Run the process described by `spec` to completion.

        Raises:
            ProcessExecutionError: If the process could not be started or did not
                finish (e.g. timed out). A non-zero exit status is not an error here.
        """


class SubprocessCmdRunner(CmdRunner):
    """`CmdRunner` backed by `subprocess.run`.

    Args:
        timeout: Seconds to wait for the process before killing it. None waits
            forever.
    """

    def __init__(self, timeout: float | None = None) -> None:
        self.timeout = timeout

    def run_complex_command(self, spec: ProcessSpec) -> CmdResult:
        cmd = [spec.name, *spec.args]
        try:
            proc = subprocess.run(  # noqa: S603
                cmd,
                input=spec.stdin,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=_build_env(spec),
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise ProcessExecutionError(
                f"Running command '{spec.name}' timed out after {exc.timeout}s"
            ) from exc
        except OSError as exc:
            raise ProcessExecutionError(
                f"Running command '{spec.name}': {exc}"
            ) from exc

        log.debug("command '%s' exited with status %d", spec.name, proc.returncode)
        return CmdResult(
            stdout=proc.stdout,
            stderr=proc.stderr,
            exit_status=proc.returncode,
        )


def _build_env(spec: ProcessSpec) -> dict[str, str] | None:
    if spec.use_isolated_env:
        return dict(spec.env or {})
    if not spec.env:
        # inherit as-is
        return None
    return {**os.environ, **spec.env}
