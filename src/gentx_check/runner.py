import os
import subprocess
import typing

from . import logs_parsing
from .configured_logger import logger
from .errors import ProcessError, SpawnError


class LogSink:
    """Append-only text file collecting the output of every subprocess.

    Writers take turns: the runner writes its header, hands the file to the
    child, then writes its trailer once the child is done.  Readers reopen
    the file and read it from the start of the sink each time.

    A sink starts at byte `offset` of the file.  `fresh()` and `segment()`
    start at the current end so output left by earlier runs is never read
    back as part of this one.  The file itself is never truncated.
    """

    def __init__(self, path, offset: int = 0):
        self.path = os.fspath(path)
        self.offset = offset

    @classmethod
    def fresh(cls, path) -> 'LogSink':
        try:
            offset = os.path.getsize(path)
        except OSError:
            offset = 0
        return cls(path, offset)

    def segment(self) -> 'LogSink':
        """A sink over the same file covering only output written from now."""
        return self.fresh(self.path)

    def open(self) -> typing.BinaryIO:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        # unbuffered so our markers land before the child's own output
        return open(self.path, 'ab', buffering=0)

    def write(self, text: str) -> None:
        with self.open() as out:
            out.write(text.encode('utf-8'))

    def lines(self) -> typing.List[str]:
        return logs_parsing.read_lines(self.path, self.offset)

    def __repr__(self):
        return f'LogSink({self.path!r}, offset={self.offset})'


def format_cmd(cmd: typing.Sequence[str]) -> str:
    return ' '.join(str(arg) for arg in cmd)


def spawn(cmd: typing.Sequence[str], out: typing.BinaryIO,
          **kwargs) -> subprocess.Popen:
    """Starts `cmd` with stdout and stderr both going to `out`."""
    try:
        return subprocess.Popen(list(cmd),
                                stdin=subprocess.DEVNULL,
                                stdout=out,
                                stderr=out,
                                **kwargs)
    except OSError as e:
        raise SpawnError(f'failed to start {format_cmd(cmd)}: {e}') from e


class ExternalProcessRunner:
    """Runs daemon subcommands to completion with output in the log sink."""

    def __init__(self, log_sink: LogSink):
        self.log_sink = log_sink

    def run(self, cmd: typing.Sequence[str]) -> None:
        """Runs `cmd` and waits for it.

        Raises:
            SpawnError: If the command could not be started.
            ProcessError: If it exits with a non-zero status.  The first log
                line that looks like an error, if any, is attached as the
                diagnostic.
        """
        printable = format_cmd(cmd)
        logger.info(f'Executing: {printable}')
        with self.log_sink.open() as out:
            out.write(f'\n=== Executing: {printable} ===\n'.encode('utf-8'))
            try:
                process = spawn(cmd, out)
            except SpawnError as e:
                out.write(f'=== Command failed with error: {e.__cause__} ===\n'.
                          encode('utf-8'))
                raise
            exit_code = process.wait()
            if exit_code == 0:
                out.write(b'=== Command completed successfully ===\n')
                logger.info('Command completed successfully')
                return
            out.write(f'=== Command failed with error: exit status {exit_code}'
                      ' ===\n'.encode('utf-8'))

        logger.error(f'Command failed: {printable}')
        match = logs_parsing.find_error(self.log_sink.lines())
        diagnostic = None
        if match is not None:
            diagnostic = f'error detected in log: {match.line}'
        raise ProcessError(cmd, exit_code, diagnostic)
