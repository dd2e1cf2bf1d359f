import json
import shutil
import sys
from pathlib import Path

import pytest

from cpirun.descriptor import PluginDescriptor
from cpirun.errors import CallTransportError, ProcessExecutionError
from cpirun.invocation import (
    DirectStrategy,
    ProcessSpec,
    ShellWrappedStrategy,
    to_emulation_path,
)
from cpirun.process import SubprocessCmdRunner
from cpirun.protocol import CallContext
from cpirun.runner import CallRunner

pytestmark = pytest.mark.skipif(
    sys.platform == "win32", reason="plugin scripts need a POSIX shell"
)

CONTEXT = CallContext(director_id="fake-director-id")


def _write_plugin(
    tmp_path: Path, body: str, jobs_dir_name: str = "jobs"
) -> PluginDescriptor:
    job_path = tmp_path / jobs_dir_name / "cpi"
    exe = job_path / "bin" / "cpi"
    exe.parent.mkdir(parents=True)
    exe.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    exe.chmod(0o755)
    packages = tmp_path / "packages"
    packages.mkdir()
    return PluginDescriptor(
        job_path=job_path, jobs_dir=job_path.parent, packages_dir=packages
    )


def test_plugin_sees_only_isolated_environment(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("CPIRUN_AMBIENT", "leak")
    descriptor = _write_plugin(
        tmp_path,
        "cat > /dev/null\n"
        'printf \'{"result":["%s","%s","%s","%s"]}\' '
        '"$BOSH_JOBS_DIR" "$BOSH_PACKAGES_DIR" "$PATH" "$CPIRUN_AMBIENT"\n',
    )
    runner = CallRunner(SubprocessCmdRunner(), descriptor, strategy=DirectStrategy())

    output = runner.run(CONTEXT, "info")

    assert output.error is None
    assert output.result == [
        str(descriptor.jobs_dir),
        str(descriptor.packages_dir),
        "/usr/local/bin:/usr/bin:/bin:/sbin",
        "",
    ]


def test_plugin_receives_request_on_stdin(tmp_path) -> None:
    request_copy = tmp_path / "request.json"
    descriptor = _write_plugin(
        tmp_path,
        f"cat > '{request_copy}'\n"
        'echo \'{"result":null,"error":{"type":"Bosh::Clouds::NotSupported",'
        '"message":"fake-run-error","ok_to_retry":false},"log":""}\'\n',
    )
    runner = CallRunner(SubprocessCmdRunner(), descriptor, strategy=DirectStrategy())

    output = runner.run(CONTEXT, "delete_vm", "vm-1")

    assert json.loads(request_copy.read_text(encoding="utf-8")) == {
        "method": "delete_vm",
        "arguments": ["vm-1"],
        "context": {"director_uuid": "fake-director-id"},
    }
    assert output.error is not None
    assert output.error.type == "Bosh::Clouds::NotSupported"
    assert output.error.message == "fake-run-error"


def test_plugin_failure_exit_is_transport_error(tmp_path) -> None:
    descriptor = _write_plugin(
        tmp_path, "cat > /dev/null\necho 'no disk' >&2\nexit 2\n"
    )
    runner = CallRunner(SubprocessCmdRunner(), descriptor, strategy=DirectStrategy())

    with pytest.raises(CallTransportError) as excinfo:
        runner.run(CONTEXT, "attach_disk", "vm-1", "disk-1")

    assert excinfo.value.exit_status == 2
    assert "no disk" in excinfo.value.stderr


def test_missing_plugin_is_transport_error(tmp_path) -> None:
    descriptor = PluginDescriptor(
        job_path=tmp_path / "missing",
        jobs_dir=tmp_path,
        packages_dir=tmp_path,
    )
    runner = CallRunner(SubprocessCmdRunner(), descriptor, strategy=DirectStrategy())

    with pytest.raises(CallTransportError, match="Executing external CPI command"):
        runner.run(CONTEXT, "info")


def test_timeout_raises_execution_error(tmp_path) -> None:
    spec = ProcessSpec(name="/bin/sh", args=("-c", "exec sleep 5"), stdin=b"")

    with pytest.raises(ProcessExecutionError, match="timed out"):
        SubprocessCmdRunner(timeout=0.2).run_complex_command(spec)


def test_non_isolated_env_adds_to_inherited(monkeypatch) -> None:
    monkeypatch.setenv("CPIRUN_AMBIENT", "kept")
    spec = ProcessSpec(
        name="/bin/sh",
        args=("-c", 'printf "%s %s" "$CPIRUN_AMBIENT" "$CPIRUN_EXTRA"'),
        env={"CPIRUN_EXTRA": "added"},
        use_isolated_env=False,
    )

    result = SubprocessCmdRunner().run_complex_command(spec)

    assert result.exit_status == 0
    assert result.stdout == b"kept added"


@pytest.mark.skipif(shutil.which("bash") is None, reason="needs bash")
def test_shell_wrapped_plugin_under_path_with_spaces(tmp_path) -> None:
    descriptor = _write_plugin(
        tmp_path,
        "cat > /dev/null\n"
        'printf \'{"result":["%s","%s"]}\' "$BOSH_JOBS_DIR" "$BOSH_PACKAGES_DIR"\n',
        jobs_dir_name="Program Files",
    )
    strategy = ShellWrappedStrategy(cwd="C:\\")
    runner = CallRunner(SubprocessCmdRunner(), descriptor, strategy=strategy)

    output = runner.run(CONTEXT, "info")

    assert output.error is None
    assert output.result == [
        to_emulation_path(descriptor.jobs_dir, "C:\\"),
        to_emulation_path(descriptor.packages_dir, "C:\\"),
    ]
    assert output.result[0].startswith("/c/")
    assert output.result[0].endswith("/Program Files")
