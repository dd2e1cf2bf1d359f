import os
import tomllib
from dataclasses import dataclass
from pathlib import Path

from cpirun.config import PLUGIN_CONFIG_ENV


@dataclass(frozen=True)
class PluginDescriptor:
    """Where a provider plugin lives and what it may read.

    Attributes:
        job_path: The plugin's job directory. By convention the executable is
            `<job_path>/bin/cpi`.
        jobs_dir: Directory holding job data, exported to the plugin as
            `BOSH_JOBS_DIR`.
        packages_dir: Directory holding packages, exported to the plugin as
            `BOSH_PACKAGES_DIR`.
        executable_override: Use this executable instead of the conventional one.
    """

    job_path: Path
    jobs_dir: Path
    packages_dir: Path
    executable_override: Path | None = None

    @property
    def executable(self) -> Path:
        if self.executable_override is not None:
            return self.executable_override
        return self.job_path / "bin" / "cpi"


def load_descriptor(path: str | Path | None = None) -> PluginDescriptor:
    """Read a plugin descriptor from the `[plugin]` table of a TOML file.

    If `path` is None, the file named by the `CPIRUN_PLUGIN_CONFIG` environment
    variable is used. Relative paths in the file are resolved against the directory
    containing it. `jobs_dir` defaults to the parent of `job_path`.

    Raises:
        FileNotFoundError: If no config file is given or it does not exist.
        ValueError: If the `[plugin]` table or a required key is missing.
    """
    if path is None:
        env_path = os.environ.get(PLUGIN_CONFIG_ENV)
        if not env_path:
            raise FileNotFoundError(
                f"No plugin config given and {PLUGIN_CONFIG_ENV} is not set"
            )
        path = env_path
    cfg = Path(os.path.expandvars(str(path))).expanduser()
    if not cfg.exists():
        raise FileNotFoundError(f"Plugin config does not exist: {cfg}")

    with cfg.open("rb") as f:
        data = tomllib.load(f)

    table = data.get("plugin")
    if not isinstance(table, dict):
        raise ValueError(f"No [plugin] table in {cfg}")

    base = cfg.resolve().parent
    for key in ("job_path", "packages_dir"):
        if not table.get(key):
            raise ValueError(f"[plugin] in {cfg} is missing '{key}'")

    job_path = _resolve(base, table["job_path"])
    jobs_dir = _resolve(base, table["jobs_dir"]) if table.get("jobs_dir") else None
    executable = (
        _resolve(base, table["executable"]) if table.get("executable") else None
    )
    return PluginDescriptor(
        job_path=job_path,
        jobs_dir=jobs_dir or job_path.parent,
        packages_dir=_resolve(base, table["packages_dir"]),
        executable_override=executable,
    )


def _resolve(base: Path, value: str) -> Path:
    path = Path(os.path.expandvars(value)).expanduser()
    if not path.is_absolute():
        path = base / path
    return path
