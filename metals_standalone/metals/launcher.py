"""Find, start and stop the Metals language server process."""

from __future__ import annotations

import asyncio
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from metals_standalone.config.schema import LauncherConfig
from metals_standalone.utils.exceptions import LaunchError, ProjectValidationError

METALS_MAIN_CLASS = "scala.meta.metals.Main"

SCALA_PROJECT_INDICATORS = (
    "build.sbt",
    "Build.scala",
    "build.sc",
    "pom.xml",
    "build.gradle",
    "project.scala",
)
SCALA_SOURCE_SUFFIXES = (".scala", ".sc")
_SKIPPED_DIRS = {".git", ".metals", ".bloop", ".bsp", "target", "node_modules", "out"}


@dataclass(slots=True)
class MetalsInstallation:
    """A resolved way to run Metals."""

    kind: str
    command: list[str]
    details: dict[str, str] = field(default_factory=dict)


def is_scala_project(project_path: Path) -> bool:
    """True when a build file or a Scala source exists under the project."""
    for indicator in SCALA_PROJECT_INDICATORS:
        if (project_path / indicator).exists():
            logger.info("Detected Scala project via {}", indicator)
            return True
    for root, dirs, files in os.walk(project_path):
        dirs[:] = [d for d in dirs if d not in _SKIPPED_DIRS]
        if any(name.endswith(SCALA_SOURCE_SUFFIXES) for name in files):
            logger.info("Detected Scala project via source files under {}", root)
            return True
    return False


def validate_project(project_path: Path) -> Path:
    """Return the resolved project directory or raise ProjectValidationError.

    A directory without Scala indicators is accepted with a warning.
    """
    path = project_path.expanduser().resolve()
    if not path.exists():
        raise ProjectValidationError(f"Project path does not exist: {path}", str(path))
    if not path.is_dir():
        raise ProjectValidationError(f"Project path is not a directory: {path}", str(path))
    if not is_scala_project(path):
        logger.warning("Directory does not appear to be a Scala project: {}", path)
    return path


class MetalsLauncher:
    """Owns the Metals subprocess for one project."""

    def __init__(self, project_path: Path, config: LauncherConfig | None = None):
        self.project_path = project_path
        self.config = config or LauncherConfig()
        self.process: asyncio.subprocess.Process | None = None
        self._stderr_task: asyncio.Task | None = None

    @property
    def returncode(self) -> int | None:
        return self.process.returncode if self.process else None

    def find_java(self) -> str | None:
        java_home = self.config.java_home or os.environ.get("JAVA_HOME")
        if java_home:
            candidate = Path(java_home) / "bin" / "java"
            if candidate.exists():
                return str(candidate)
        return shutil.which("java")

    async def _coursier_classpath(self, coursier: str) -> str | None:
        artifact = f"org.scalameta:metals_2.13:{self.config.metals_version}"
        logger.info("Fetching Metals {} classpath via Coursier...", self.config.metals_version)
        try:
            proc = await asyncio.create_subprocess_exec(
                coursier,
                "fetch",
                "--classpath",
                artifact,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await proc.communicate()
        except OSError as exc:
            logger.warning("Coursier fetch failed: {}", exc)
            return None
        if proc.returncode != 0:
            err = (stderr or b"").decode("utf-8", errors="replace").strip()
            logger.warning("Coursier fetch failed (exit {}): {}", proc.returncode, err[-500:])
            return None
        classpath = (stdout or b"").decode("utf-8", errors="replace").strip()
        if not classpath:
            logger.warning("Empty classpath returned from Coursier")
            return None
        return classpath

    async def find_installation(self) -> MetalsInstallation | None:
        """Resolve the command: configured override, Coursier, then `metals` on PATH."""
        if self.config.server_command:
            return MetalsInstallation(kind="configured", command=list(self.config.server_command))

        coursier = shutil.which("cs") or shutil.which("coursier")
        if coursier:
            java = self.find_java()
            if not java:
                logger.warning("Coursier found but no Java executable (set JAVA_HOME)")
            else:
                classpath = await self._coursier_classpath(coursier)
                if classpath:
                    return MetalsInstallation(
                        kind="coursier",
                        command=[java, "-cp", classpath, METALS_MAIN_CLASS],
                        details={"coursier": coursier, "version": self.config.metals_version},
                    )

        metals = shutil.which("metals")
        if metals:
            return MetalsInstallation(kind="path", command=[metals])
        return None

    async def launch(self) -> asyncio.subprocess.Process:
        """Spawn Metals with piped stdio in the project directory."""
        if self.process is not None and self.process.returncode is None:
            return self.process
        installation = await self.find_installation()
        if installation is None:
            raise LaunchError(
                "Could not find a Metals installation",
                details={"hint": "install Coursier (cs) and Java, or put `metals` on PATH"},
            )
        logger.info("Starting Metals ({}): {}", installation.kind, " ".join(installation.command[:3]))
        try:
            self.process = await asyncio.create_subprocess_exec(
                *installation.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self.project_path),
            )
        except OSError as exc:
            raise LaunchError(f"Failed to start Metals: {exc}", details={"command": installation.command[0]}) from exc
        if self.process.stdin is None or self.process.stdout is None:
            raise LaunchError("Metals stdio is unavailable")
        self._stderr_task = asyncio.create_task(self._drain_stderr(self.process), name="metals-stderr")
        logger.info("Metals process started (pid {})", self.process.pid)
        return self.process

    async def _drain_stderr(self, process: asyncio.subprocess.Process) -> None:
        if process.stderr is None:
            return
        while True:
            line = await process.stderr.readline()
            if not line:
                return
            text = line.decode("utf-8", errors="replace").strip()
            if text:
                logger.debug("[metals-stderr] {}", text)

    async def wait(self) -> int | None:
        """Wait for the process to exit and return its exit code."""
        if self.process is None:
            return None
        return await self.process.wait()

    async def stop(self) -> None:
        """Terminate the process; kill it if still alive after the grace period."""
        process = self.process
        if process is None:
            return
        if process.returncode is None:
            logger.info("Shutting down Metals process...")
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=self.config.kill_grace)
            except asyncio.TimeoutError:
                logger.warning("Metals process did not terminate gracefully, force killing...")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await process.wait()
            logger.info("Metals process terminated (returncode {})", process.returncode)
        if self._stderr_task is not None:
            self._stderr_task.cancel()
            await asyncio.gather(self._stderr_task, return_exceptions=True)
            self._stderr_task = None
        self.process = None
