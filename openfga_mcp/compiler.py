"""
Authorization model DSL -> JSON compilation.

OpenFGA's write-model endpoint only accepts the JSON form of a model, while
people author models in the DSL:

    model
      schema 1.1
    type user
    type vehicle
      relations
        define viewer: [user]

The conversion is delegated to the OpenFGA CLI (`fga model transform`). The
client depends only on the ModelCompiler protocol, so tests can substitute a
stub that never spawns a process.
"""

import asyncio
import contextlib
import logging
import os
import tempfile
from typing import Protocol

from openfga_mcp.config import Settings
from openfga_mcp.errors import DslCompilationError

logger = logging.getLogger(__name__)


class ModelCompiler(Protocol):
    """Turns authorization model DSL text into the JSON document text."""

    async def compile(self, dsl: str) -> str: ...


class FgaCliCompiler:
    """
    ModelCompiler backed by the `fga` command line tool.

    Each call writes the DSL to a fresh temporary directory, runs
    `fga model transform --file <path>` and returns its standard output.

    Args:
        executable: Name or path of the fga binary
        timeout: Seconds to wait before the process is killed
    """

    def __init__(self, executable: str = "fga", timeout: float = 30.0):
        self.executable = executable
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "FgaCliCompiler":
        """Build a compiler from the OPENFGA_FGA_CLI and OPENFGA_MODEL_TRANSFORM_TIMEOUT settings."""
        return cls(executable=settings.fga_cli, timeout=settings.model_transform_timeout)

    async def compile(self, dsl: str) -> str:
        temp_dir = tempfile.mkdtemp(prefix="openfga-")
        model_path = os.path.join(temp_dir, "model.fga")
        try:
            with open(model_path, "w", encoding="utf-8") as f:
                f.write(dsl)
            return await self._transform(model_path)
        finally:
            # Cleanup failures must not mask the compilation result.
            with contextlib.suppress(OSError):
                os.unlink(model_path)
            with contextlib.suppress(OSError):
                os.rmdir(temp_dir)

    async def _transform(self, model_path: str) -> str:
        args = [self.executable, "model", "transform", "--file", model_path]
        logger.debug("Running %s", " ".join(args))

        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise DslCompilationError(f"Failed to run {self.executable}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), self.timeout)
        except asyncio.TimeoutError:
            raise DslCompilationError(
                f"{self.executable} model transform timed out after {self.timeout:g}s"
            ) from None
        finally:
            # Timed out or cancelled: the child must not outlive the call.
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise DslCompilationError(
                f"{self.executable} model transform failed "
                f"(exit code {process.returncode}): {detail}"
            )

        return stdout.decode("utf-8").strip()
