"""Turn a plugin descriptor and an encoded request into a process to start.

Plugins are conventionally POSIX shell scripts. On POSIX hosts they are run directly
with an isolated environment. On Windows they have to go through the bash of a POSIX
emulation layer (MSYS, Git Bash), which does not reliably pass a native environment
block through, so the environment is exported inside the shell command instead.
"""

import abc
import os
import shlex
import sys
from dataclasses import dataclass
from pathlib import PureWindowsPath

from cpirun.descriptor import PluginDescriptor

PACKAGES_DIR_VAR = "BOSH_PACKAGES_DIR"
JOBS_DIR_VAR = "BOSH_JOBS_DIR"
BASE_PATH = "/usr/local/bin:/usr/bin:/bin:/sbin"
EMULATION_TOOL_DIRS = (
    "/c/Windows/System32/WindowsPowerShell/v1.0",
    "/d/Program Files/Oracle/VirtualBox",
)


@dataclass(frozen=True)
class ProcessSpec:
    """Everything a command runner needs to start one plugin process.

    Attributes:
        name: Executable to run.
        args: Arguments to pass to it.
        env: Environment variables for the process. None means no additions.
        use_isolated_env: If True, `env` is the entire environment; nothing is
            inherited from the calling process.
        stdin: Bytes written to the process's stdin.
    """

    name: str
    args: tuple[str, ...] = ()
    env: dict[str, str] | None = None
    use_isolated_env: bool = False
    stdin: bytes = b""


@dataclass(frozen=True)
class InvocationStrategy(abc.ABC):
    @abc.abstractmethod
    def build(self, descriptor: PluginDescriptor, request: bytes) -> ProcessSpec:
        """Describe the process that serves one call."""


@dataclass(frozen=True)
class DirectStrategy(InvocationStrategy):
    """Run the plugin executable itself with only the plugin variables set."""

    def build(self, descriptor: PluginDescriptor, request: bytes) -> ProcessSpec:
        return ProcessSpec(
            name=str(descriptor.executable),
            args=(),
            env={
                PACKAGES_DIR_VAR: str(descriptor.packages_dir),
                JOBS_DIR_VAR: str(descriptor.jobs_dir),
                "PATH": BASE_PATH,
            },
            use_isolated_env=True,
            stdin=request,
        )


@dataclass(frozen=True)
class ShellWrappedStrategy(InvocationStrategy):
    """Run the plugin under the emulation layer's bash, exporting the plugin
    variables in the command string.

    Attributes:
        shell: The POSIX shell to start.
        tool_dirs: Emulation-layer directories appended to the plugin's PATH.
        cwd: Directory that relative descriptor paths are resolved against. Defaults
            to the current directory at build time.
    """

    shell: str = "bash"
    tool_dirs: tuple[str, ...] = EMULATION_TOOL_DIRS
    cwd: str | None = None

    def build(self, descriptor: PluginDescriptor, request: bytes) -> ProcessSpec:
        cwd = self.cwd if self.cwd is not None else os.getcwd()
        path = ":".join((BASE_PATH, *self.tool_dirs))
        exports = [
            (PACKAGES_DIR_VAR, to_emulation_path(descriptor.packages_dir, cwd)),
            (JOBS_DIR_VAR, to_emulation_path(descriptor.jobs_dir, cwd)),
            ("PATH", path),
        ]
        executable = PureWindowsPath(str(descriptor.executable)).as_posix()
        command = " ".join(f"export {k}={_single_quote(v)};" for k, v in exports)
        command += f" {self.shell} -x {shlex.quote(executable)}"
        return ProcessSpec(
            name=self.shell,
            args=("-c", command),
            env=None,
            use_isolated_env=False,
            stdin=request,
        )


def to_emulation_path(path: str | os.PathLike, cwd: str | os.PathLike) -> str:
    """Rewrite a Windows path into the emulation layer's form:
    `C:\\bosh\\jobs` becomes `/c/bosh/jobs`. Relative paths are made absolute
    against `cwd` first."""
    win_path = PureWindowsPath(os.fspath(path))
    if not win_path.is_absolute():
        win_path = PureWindowsPath(os.fspath(cwd)) / win_path
    drive = win_path.drive
    posix = win_path.as_posix()
    # UNC shares have no drive letter to fold
    if len(drive) != 2 or drive[1] != ":":
        return posix
    return "/" + drive[0].lower() + posix[len(drive) :]


def select_strategy(platform: str | None = None) -> InvocationStrategy:
    """Pick the invocation strategy for a host platform (`sys.platform` style)."""
    if platform is None:
        platform = sys.platform
    if platform in ("win32", "cygwin"):
        return ShellWrappedStrategy()
    return DirectStrategy()


def _single_quote(value: str) -> str:
    return "'" + value.replace("'", "'\\''") + "'"
