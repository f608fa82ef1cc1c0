"""
Tests for the fga CLI wrapper (openfga_mcp/compiler.py).

Instead of the real OpenFGA CLI, each test writes a tiny shell script that
plays its part. The compiler calls it as

    <script> model transform --file <path>

so inside the script "$4" is the path of the temporary DSL file.
"""

import asyncio
import os
import sys
from pathlib import Path

import pytest

from openfga_mcp.compiler import FgaCliCompiler
from openfga_mcp.errors import DslCompilationError

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="uses /bin/sh scripts")


@pytest.fixture
def fake_fga(tmp_path):
    """Factory writing an executable script that stands in for `fga`."""

    def _fake_fga(body: str) -> str:
        script = tmp_path / "fga"
        script.write_text(f"#!/bin/sh\n{body}\n", encoding="utf-8")
        script.chmod(0o755)
        return str(script)

    return _fake_fga


async def test_returns_cli_output(fake_fga):
    compiler = FgaCliCompiler(fake_fga("echo '  {\"schema_version\": \"1.1\"}  '"))

    assert await compiler.compile("model") == '{"schema_version": "1.1"}'


async def test_passes_dsl_through_a_file(fake_fga):
    dsl = "model\n  schema 1.1\ntype user\n"
    compiler = FgaCliCompiler(fake_fga('cat "$4"'))

    assert await compiler.compile(dsl) == dsl.strip()


async def test_invokes_model_transform(fake_fga):
    compiler = FgaCliCompiler(fake_fga('echo "$1 $2 $3"'))

    assert await compiler.compile("model") == "model transform --file"


async def test_temporary_file_is_removed(fake_fga):
    compiler = FgaCliCompiler(fake_fga('echo "$4"'))

    model_path = Path(await compiler.compile("model"))

    assert model_path.name == "model.fga"
    assert not model_path.exists()
    assert not model_path.parent.exists()


async def test_non_zero_exit_raises(fake_fga):
    compiler = FgaCliCompiler(fake_fga("echo 'unexpected token' >&2\nexit 3"))

    with pytest.raises(DslCompilationError, match=r"exit code 3\): unexpected token"):
        await compiler.compile("model")


async def test_timeout_raises(fake_fga):
    compiler = FgaCliCompiler(fake_fga("exec sleep 5"), timeout=0.2)

    with pytest.raises(DslCompilationError, match="timed out after 0.2s"):
        await compiler.compile("model")


async def test_missing_executable_raises(tmp_path):
    compiler = FgaCliCompiler(str(tmp_path / "no-such-fga"))

    with pytest.raises(DslCompilationError, match="Failed to run"):
        await compiler.compile("model")


async def test_timeout_tolerates_process_exiting_before_kill(monkeypatch):
    class ExitedProcess:
        """A process that finishes on its own just as the timeout fires."""

        returncode = None

        async def communicate(self):
            await asyncio.sleep(30)

        def kill(self):
            raise ProcessLookupError

        async def wait(self):
            self.returncode = 0
            return 0

    async def create_subprocess_exec(*args, **kwargs):
        return ExitedProcess()

    monkeypatch.setattr(asyncio, "create_subprocess_exec", create_subprocess_exec)
    compiler = FgaCliCompiler(timeout=0.1)

    with pytest.raises(DslCompilationError, match="timed out after 0.1s"):
        await compiler.compile("model")


async def test_cancelled_compile_kills_the_cli(fake_fga, tmp_path):
    pid_file = tmp_path / "fga.pid"
    compiler = FgaCliCompiler(fake_fga(f'echo $$ > "{pid_file}"\nexec sleep 30'))

    task = asyncio.create_task(compiler.compile("model"))
    for _ in range(250):
        if pid_file.exists() and pid_file.read_text().strip():
            break
        await asyncio.sleep(0.02)
    pid = int(pid_file.read_text())

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # The child has been killed and reaped, so the pid no longer exists.
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


# ---------------------------------------------------------------------------
# Test: configuration
# ---------------------------------------------------------------------------


def test_default_timeout_is_thirty_seconds(make_settings):
    assert FgaCliCompiler().timeout == 30.0
    assert make_settings().model_transform_timeout == 30.0
    assert FgaCliCompiler.from_settings(make_settings()).timeout == 30.0


def test_from_settings_reads_environment(make_settings, monkeypatch):
    monkeypatch.setenv("OPENFGA_FGA_CLI", "/opt/fga/bin/fga")
    monkeypatch.setenv("OPENFGA_MODEL_TRANSFORM_TIMEOUT", "5")

    compiler = FgaCliCompiler.from_settings(make_settings())

    assert compiler.executable == "/opt/fga/bin/fga"
    assert compiler.timeout == 5.0
