"""Boots a throwaway node and watches its log for a fatal panic.

The node runs as a separate OS process writing into the shared log sink; the
monitor polls that file and the process handle on a fixed interval until a
deadline.  Surviving until the deadline is the success outcome.

    STARTING -> RUNNING -> TIMED_OUT | PANIC_DETECTED | PROCESS_EXITED
             -> TERMINATED
"""
import enum
import math
import subprocess
import time
import typing

import psutil

from . import logs_parsing
from .config import ValidatorConfig
from .configured_logger import logger
from .errors import PanicDetectedError, ProcessExitedError
from .runner import LogSink, format_cmd, spawn


class MonitorState(enum.Enum):
    STARTING = 'starting'
    RUNNING = 'running'
    TIMED_OUT = 'timed-out'
    PANIC_DETECTED = 'panic-detected'
    PROCESS_EXITED = 'process-exited'
    TERMINATED = 'terminated'


class PanicReport(typing.NamedTuple):
    line: str
    line_number: int
    context: typing.List[str]


class MonitorReport(typing.NamedTuple):
    """Outcome of one supervised node run.

    `state` is the state the run ended in before termination: TIMED_OUT on
    success, PANIC_DETECTED or PROCESS_EXITED on failure.
    """
    state: MonitorState
    pid: int
    elapsed: float
    checks: int
    exit_code: typing.Optional[int] = None
    panic: typing.Optional[PanicReport] = None

    @property
    def ok(self) -> bool:
        return self.state == MonitorState.TIMED_OUT

    def raise_for_status(self) -> None:
        if self.state == MonitorState.PANIC_DETECTED:
            raise PanicDetectedError(self.panic.line, self.panic.line_number,
                                     self.panic.context)
        if self.state == MonitorState.PROCESS_EXITED:
            raise ProcessExitedError(self.exit_code)


def terminate(process: subprocess.Popen, stop_timeout: float,
              settle_time: float) -> typing.Optional[int]:
    """Stops `process` and anything it spawned.

    SIGTERM goes to the process and its children at once and all of them
    share one `stop_timeout`.  Whatever cannot be signalled or is still alive
    then gets SIGKILL, and all of them share one `settle_time` to go away.
    Failures past the kill attempt are logged, not raised.
    """
    try:
        children = psutil.Process(process.pid).children(recursive=True)
    except psutil.Error:
        children = []

    kill_parent = False
    if process.poll() is None:
        try:
            process.terminate()
        except OSError as e:
            logger.warning(f'Graceful stop of PID {process.pid} failed ({e})')
            kill_parent = True
    for child in children:
        try:
            child.terminate()
        except psutil.NoSuchProcess:
            pass
        except psutil.Error:
            logger.warning(f'Could not signal child process {child.pid}')

    deadline = time.monotonic() + stop_timeout
    if not kill_parent:
        try:
            process.wait(stop_timeout)
        except subprocess.TimeoutExpired:
            logger.warning(f'PID {process.pid} still running after '
                           f'{stop_timeout} seconds, killing it')
            kill_parent = True
    _, alive = psutil.wait_procs(children,
                                 timeout=max(0, deadline - time.monotonic()))

    settle_deadline = time.monotonic() + settle_time
    if kill_parent:
        try:
            process.kill()
        except OSError as e:
            logger.error(f'Failed to kill PID {process.pid}: {e}')
    for child in alive:
        try:
            child.kill()
        except psutil.NoSuchProcess:
            pass
        except psutil.Error as e:
            logger.error(f'Failed to kill child process {child.pid}: {e}')
    if kill_parent:
        try:
            process.wait(settle_time)
        except subprocess.TimeoutExpired:
            logger.error(f'PID {process.pid} survived SIGKILL')
    if alive:
        psutil.wait_procs(alive,
                          timeout=max(0, settle_deadline - time.monotonic()))

    return process.returncode


class NodeHealthMonitor:

    def __init__(self, config: ValidatorConfig, log_sink: LogSink):
        self.config = config
        self.log_sink = log_sink
        self.state = None
        self.history = []

    def _set_state(self, state: MonitorState) -> None:
        logger.debug(f'Node monitor state: {state.value}')
        self.state = state
        self.history.append(state)

    def run(self, cmd: typing.Sequence[str]) -> MonitorReport:
        """Starts `cmd` in the background and supervises it.

        The process is always stopped before this returns.

        Raises:
            SpawnError: If the node could not be started.
        """
        self._set_state(MonitorState.STARTING)
        started = time.monotonic()
        logger.info(f'Starting node in background: {format_cmd(cmd)}')
        with self.log_sink.open() as out:
            out.write(f'\n=== Executing: {format_cmd(cmd)} ===\n'.encode(
                'utf-8'))
            process = spawn(cmd, out)
        logger.info(f'Node started with PID: {process.pid}')

        try:
            report = self._supervise(process, started)
        finally:
            if self.state == MonitorState.PANIC_DETECTED:
                logger.warning('Terminating process after panic detection '
                               'and log collection')
            exit_code = terminate(process, self.config.stop_timeout,
                                  self.config.settle_time)
            self._set_state(MonitorState.TERMINATED)

        if report.exit_code is None and report.state != MonitorState.TIMED_OUT:
            report = report._replace(exit_code=exit_code)
        logger.info(
            f'Node test completed in {time.monotonic() - started:.1f}s')
        return report

    def _supervise(self, process: subprocess.Popen,
                   started: float) -> MonitorReport:
        self._set_state(MonitorState.RUNNING)
        interval = self.config.poll_interval
        deadline = started + self.config.timeout
        next_tick = started + interval
        total_checks = max(1, math.ceil(self.config.timeout / interval))
        checks = 0

        while True:
            now = time.monotonic()
            wake = min(next_tick, deadline)
            if wake > now:
                time.sleep(wake - now)
            now = time.monotonic()
            checks += 1
            logger.info(f'Health check {checks}/{total_checks}')

            match = logs_parsing.find_panic(self.log_sink.lines())
            exit_code = process.poll()
            if match is None and exit_code is not None:
                # output written right before exiting is read once more
                match = logs_parsing.find_panic(self.log_sink.lines())
            if match is not None:
                self._set_state(MonitorState.PANIC_DETECTED)
                return MonitorReport(state=MonitorState.PANIC_DETECTED,
                                     pid=process.pid,
                                     elapsed=now - started,
                                     checks=checks,
                                     panic=self._collect_panic(match))

            if exit_code is not None:
                self._set_state(MonitorState.PROCESS_EXITED)
                logger.error(
                    f'Node process exited unexpectedly with status {exit_code}')
                return MonitorReport(state=MonitorState.PROCESS_EXITED,
                                     pid=process.pid,
                                     elapsed=now - started,
                                     checks=checks,
                                     exit_code=exit_code)

            if now >= deadline:
                self._set_state(MonitorState.TIMED_OUT)
                logger.info(
                    f'Timeout reached after {self.config.timeout} seconds')
                return MonitorReport(state=MonitorState.TIMED_OUT,
                                     pid=process.pid,
                                     elapsed=now - started,
                                     checks=checks)

            while next_tick <= now:
                next_tick += interval

    def _collect_panic(self, match: logs_parsing.Match) -> PanicReport:
        logger.error(f'Panic detected: {match.line}')
        logger.info(f'Waiting {self.config.panic_wait} seconds for additional '
                    'log output after panic...')
        time.sleep(self.config.panic_wait)

        # the sink is append-only so the panic stays at the same index
        lines = self.log_sink.lines()
        context = logs_parsing.context_after(lines, match.index,
                                             self.config.panic_context_lines)
        logger.error(f'Panic context (showing panic line + '
                     f'{self.config.panic_context_lines} lines after):')
        for offset, line in enumerate(context):
            logger.error(f'    L{match.line_number + offset}: {line}')
        return PanicReport(line=match.line,
                           line_number=match.line_number,
                           context=context)
