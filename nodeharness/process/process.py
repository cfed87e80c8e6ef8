import asyncio
import os
import signal
from asyncio.subprocess import Process as SubprocessProcess
from typing import IO

from nodeharness.env import Env, TimeParser
from nodeharness.errors import ProcessSupervisorError
from nodeharness.logging import Logger
from nodeharness.logging.harness_logging_models import (
    ProcessDebug,
    ProcessError,
    ProcessInfo,
)
from nodeharness.scope import TestScope

from .binary import binary_path
from .models import ProcessStatus
from .process_options import ProcessOption, ProcessOptions


class Process:
    """
    Supervises one external executable for the lifetime of a test.

    Output not redirected to a file is streamed line by line into the
    harness log at debug level.
    """

    def __init__(
        self,
        scope: TestScope,
        name: str,
        args: list[str],
        *options: ProcessOption,
        env: Env | None = None,
        logger: Logger | None = None,
    ) -> None:
        if env is None:
            env = Env()

        self.name = name
        self.args = list(args)
        self.status = ProcessStatus.CREATED

        self._env = env
        self._options = ProcessOptions()
        for option in options:
            option(self._options)

        self._stop_timeout = TimeParser(env.NODE_HARNESS_PROCESS_STOP_TIMEOUT).time
        self._process: SubprocessProcess | None = None
        self._return_code: int | None = None
        self._output_tasks: list[asyncio.Task] = []
        self._output_files: list[IO[bytes]] = []

        if logger is None:
            logger = Logger()

        self._logger = logger
        self._logger.configure(
            name="process",
            path=self._log_path(),
            template="{timestamp} - {level} - {thread_id} - {filename}:{function_name}.{line_number} - {command} - {message}",
            models={
                "debug": (ProcessDebug, {"command": name}),
                "info": (ProcessInfo, {"command": name}),
                "error": (ProcessError, {"command": name}),
            },
        )

        scope.add_cleanup(self.cleanup)

    @property
    def pid(self) -> int | None:
        if self._process:
            return self._process.pid

    @property
    def return_code(self) -> int | None:
        return self._return_code

    @property
    def env_vars(self) -> dict[str, str]:
        return dict(self._options.env_vars)

    @property
    def running(self) -> bool:
        return self.status == ProcessStatus.RUNNING

    async def run(self):
        if self._process is not None:
            raise ProcessSupervisorError(
                f"Err. - process {self.name} has already been started"
            )

        command = binary_path(self.name, self._env)

        process_env = dict(os.environ)
        process_env.update(self._options.env_vars)

        stdout = self._open_output(self._options.stdout_path)
        stderr = self._open_output(self._options.stderr_path)

        try:
            self._process = await asyncio.create_subprocess_exec(
                command,
                *self.args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=stdout,
                stderr=stderr,
                env=process_env,
                cwd=self._options.working_directory,
            )

        except OSError as err:
            self.status = ProcessStatus.FAILED
            self._close_output_files()

            async with self._logger.context(name="process") as ctx:
                await ctx.log_prepared(
                    f"Failed to start {command}: {str(err)}",
                    name="error",
                )

            raise ProcessSupervisorError(
                f"Err. - failed to start process {command} - {str(err)}"
            ) from err

        self.status = ProcessStatus.RUNNING

        if self._process.stdout is not None:
            self._output_tasks.append(
                asyncio.create_task(self._forward_output(self._process.stdout, "stdout"))
            )

        if self._process.stderr is not None:
            self._output_tasks.append(
                asyncio.create_task(self._forward_output(self._process.stderr, "stderr"))
            )

        async with self._logger.context(name="process") as ctx:
            await ctx.log_prepared(
                f"Started {command} with pid {self._process.pid} and args {' '.join(self.args)}",
                name="info",
            )

    async def wait(self, timeout: int | float | None = None) -> int:
        if self._process is None:
            raise ProcessSupervisorError(
                f"Err. - process {self.name} has not been started"
            )

        self._return_code = await asyncio.wait_for(
            self._process.wait(),
            timeout=timeout,
        )

        if self.status == ProcessStatus.RUNNING:
            self.status = ProcessStatus.EXITED

        return self._return_code

    async def cleanup(self):
        if self._process is None or self.status in [
            ProcessStatus.STOPPED,
            ProcessStatus.FAILED,
        ]:
            return

        if self._process.returncode is None:
            try:
                self._process.send_signal(signal.SIGTERM)

            except ProcessLookupError:
                pass

            try:
                self._return_code = await asyncio.wait_for(
                    self._process.wait(),
                    timeout=self._stop_timeout,
                )

            except asyncio.TimeoutError:
                async with self._logger.context(name="process") as ctx:
                    await ctx.log_prepared(
                        f"Process {self._process.pid} did not exit within {self._stop_timeout}s of SIGTERM, killing",
                        name="error",
                    )

                self._process.kill()
                self._return_code = await self._process.wait()

        else:
            self._return_code = self._process.returncode

        self.status = ProcessStatus.STOPPED

        if self._output_tasks:
            await asyncio.gather(*self._output_tasks)
            self._output_tasks.clear()

        self._close_output_files()
        self._output_files.clear()

        async with self._logger.context(name="process") as ctx:
            await ctx.log_prepared(
                f"Process {self._process.pid} exited with code {self._return_code}",
                name="info",
            )

        expected_code = self._options.exit_code
        if expected_code is not None and self._return_code != expected_code:
            raise ProcessSupervisorError(
                f"Err. - process {self.name} exited with code {self._return_code}, expected {expected_code}"
            )

    def _close_output_files(self):
        for output_file in self._output_files:
            output_file.close()

    def _open_output(self, path: str | None):
        if path is None:
            return asyncio.subprocess.PIPE

        output_file = open(path, "ab")
        self._output_files.append(output_file)

        return output_file

    async def _forward_output(
        self,
        reader: asyncio.StreamReader,
        stream_name: str,
    ):
        async with self._logger.context(name="process", nested=True) as ctx:
            async for line in reader:
                await ctx.log_prepared(
                    f"[{stream_name}] {line.decode(errors='replace').rstrip()}",
                    name="debug",
                )

    def _log_path(self) -> str | None:
        if self._env.NODE_HARNESS_LOGS_DIRECTORY:
            return os.path.join(
                self._env.NODE_HARNESS_LOGS_DIRECTORY,
                "nodeharness.process.log.json",
            )
