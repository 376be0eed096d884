import contextlib
import enum
import os
import time
import typing

from . import logs_parsing
from .config import ValidatorConfig
from .configured_logger import logger
from .errors import (FeeError, GentxCheckError, ParseError, PanicDetectedError,
                     ProcessError, ProcessExitedError, StagingError)
from .fee import check_gentx_fee
from .monitor import MonitorReport, NodeHealthMonitor
from .runner import ExternalProcessRunner, LogSink
from .workspace import ValidationWorkspace

PASSED = 'passed'
FAILED = 'failed'
NO_FILES = 'no-files'

# Errors that fail a single file.  Anything else aborts the run.
FILE_FAILURES = (ParseError, FeeError, ProcessError, PanicDetectedError,
                 ProcessExitedError)


class Mode(enum.Enum):
    BATCH = 'batch'
    PER_FILE = 'per-file'


class FileValidationResult(typing.NamedTuple):
    file: str
    status: str
    message: str = ''

    @property
    def passed(self) -> bool:
        return self.status == PASSED

    def to_json(self) -> typing.Dict[str, str]:
        return self._asdict()


class RunResult(typing.NamedTuple):
    """Aggregate verdict of a validation run.

    Attributes:
        status: `passed`, `failed` or `no-files`.
        message: Human readable summary.
        files_validated: Number of files that passed.
        network_validated: Network label the run was made for.
        results: One entry per file that got a verdict, in input order.
        failed_files: Paths of the failed entries of `results`.
        log_tail: Last lines of the run's log, colour codes stripped.
    """
    status: str
    message: str
    files_validated: int
    network_validated: str
    results: typing.Tuple[FileValidationResult, ...] = ()
    failed_files: typing.Tuple[str, ...] = ()
    log_tail: typing.Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status != FAILED

    def summary_line(self) -> str:
        return (f'Status: {self.status}, Network: {self.network_validated}, '
                f'Files: {self.files_validated}, Message: {self.message}')

    def to_json(self) -> typing.Dict[str, typing.Any]:
        return {
            'status': self.status,
            'message': self.message,
            'files_validated': self.files_validated,
            'network_validated': self.network_validated,
            'results': [result.to_json() for result in self.results],
            'failed_files': list(self.failed_files),
            'log_tail': list(self.log_tail),
        }


def aggregate(results: typing.Sequence[FileValidationResult],
              network: str,
              message: typing.Optional[str] = None,
              log_tail: typing.Sequence[str] = ()) -> RunResult:
    """Folds per-file results into a RunResult.

    The run fails iff at least one file failed.
    """
    passed = sum(1 for result in results if result.passed)
    failed_files = tuple(
        result.file for result in results if not result.passed)
    status = FAILED if failed_files else PASSED
    if message is None:
        if status == FAILED:
            message = (f'Validation failed. {passed} passed, '
                       f'{len(failed_files)} failed')
        else:
            message = f'Validated {passed} files'
    return RunResult(status=status,
                     message=message,
                     files_validated=passed,
                     network_validated=network,
                     results=tuple(results),
                     failed_files=failed_files,
                     log_tail=tuple(log_tail))


def discover_gentx_files(path: str) -> typing.List[str]:
    """Returns the gentx files named by `path`.

    A `.json` file is returned as is.  A directory yields its `.json` entries
    in name order, without descending into subdirectories.

    Raises:
        StagingError: If the path is missing or is a non-JSON file.
    """
    if not os.path.exists(path):
        raise StagingError(f'path does not exist: {path}')
    if not os.path.isdir(path):
        if not path.endswith('.json'):
            raise StagingError(f'file must have .json extension: {path}')
        return [path]
    try:
        names = sorted(os.listdir(path))
    except OSError as e:
        raise StagingError(f'failed to read directory: {e}') from e
    return [
        os.path.join(path, name)
        for name in names
        if name.endswith('.json') and
        not os.path.isdir(os.path.join(path, name))
    ]


@contextlib.contextmanager
def stage(name: str):
    """Tags errors escaping the block with the stage they came from."""
    try:
        yield
    except GentxCheckError as e:
        e.with_stage(name)
        raise


class ValidationPipeline:
    """Runs gentx files through fee check, collection, validation and a
    supervised node start.

    Two modes are supported.  Batch mode checks every fee first, then stages
    all files into one workspace and runs the daemon once, which is how the
    real genesis is assembled and the only way to see conflicts between
    files.  Per-file mode gives every file its own workspace and daemon run
    and keeps going after a file fails.
    """

    def __init__(self, config: ValidatorConfig):
        self.config = config

    def run(self,
            files: typing.Sequence[str],
            mode: Mode = Mode.BATCH) -> RunResult:
        """Validates `files` and returns the aggregate verdict.

        Raises:
            StagingError: If the workspace cannot be set up.
            SpawnError: If the daemon cannot be launched at all.
        """
        files = list(files)
        network = self.config.network
        if not files:
            logger.warning('No gentx files found to validate')
            return RunResult(
                status=NO_FILES,
                message=f'No {network} GenTx files found to validate',
                files_validated=0,
                network_validated=network)

        logger.info(f'Found {len(files)} gentx file(s) to validate:')
        for i, gentx_file in enumerate(files):
            logger.info(f'    {i + 1}. {gentx_file}')

        started = time.monotonic()
        log_sink = LogSink.fresh(self.config.log_file)
        try:
            if mode == Mode.BATCH:
                result = self._run_batch(files, log_sink)
            else:
                result = self._run_per_file(files, log_sink)
        finally:
            log_tail = self.report_log_tail(log_sink)
            logger.info(f'Total validation time '
                        f'({time.monotonic() - started:.1f}s)')

        result = result._replace(log_tail=tuple(log_tail))
        self.report_summary(result)
        return result

    def _run_batch(self, files: typing.List[str],
                   log_sink: LogSink) -> RunResult:
        network = self.config.network
        runner = ExternalProcessRunner(log_sink)
        workspace = ValidationWorkspace(self.config.home, self.config, runner)

        logger.info('[1/5] Setting up workspace')
        with stage('setup'):
            workspace.prepare()

        logger.info('[2/5] Validating gentx fees')
        for i, gentx_file in enumerate(files):
            logger.info(f'Validating fee for file {i + 1}/{len(files)}: '
                        f'{os.path.basename(gentx_file)}')
            try:
                with stage('fee'):
                    check_gentx_fee(gentx_file, self.config.min_fee)
            except (ParseError, FeeError) as e:
                logger.error(
                    f'gentx fee validation failed for {gentx_file}: {e}')
                # nothing reaches the daemon once a single fee is bad
                return aggregate(
                    [FileValidationResult(gentx_file, FAILED, str(e))],
                    network,
                    message=(f'Validation aborted at fee check: '
                             f'{os.path.basename(gentx_file)}: {e}'))
        logger.info('All gentx fees validated successfully')

        logger.info('[3/5] Copying all gentx files')
        with stage('stage'):
            workspace.stage(files)
        logger.info(f'Successfully copied {len(files)} gentx files')

        try:
            self._run_daemon(workspace, runner, log_sink, first_step=4)
        except FILE_FAILURES as e:
            logger.error(f'Validation failed: {e}')
            return aggregate(
                [FileValidationResult(f, FAILED, str(e)) for f in files],
                network)
        return aggregate([
            FileValidationResult(f, PASSED, 'Validation successful')
            for f in files
        ], network)

    def _run_per_file(self, files: typing.List[str],
                      log_sink: LogSink) -> RunResult:
        results = []
        for i, gentx_file in enumerate(files):
            name = os.path.splitext(os.path.basename(gentx_file))[0]
            logger.info(f'[{i + 1}/{len(files)}] Validating {gentx_file}')

            file_sink = log_sink.segment()
            runner = ExternalProcessRunner(file_sink)
            workspace = ValidationWorkspace(
                os.path.join(self.config.home, name), self.config, runner)
            with stage('setup'):
                workspace.prepare()

            try:
                with stage('fee'):
                    check_gentx_fee(gentx_file, self.config.min_fee)
                with stage('stage'):
                    workspace.stage([gentx_file])
                self._run_daemon(workspace, runner, file_sink)
            except FILE_FAILURES as e:
                logger.error(f'Validation failed for {gentx_file}: {e}')
                results.append(FileValidationResult(gentx_file, FAILED,
                                                    str(e)))
                continue
            results.append(
                FileValidationResult(gentx_file, PASSED,
                                     'Validation successful'))
        return aggregate(results, self.config.network)

    def _run_daemon(self,
                    workspace: ValidationWorkspace,
                    runner: ExternalProcessRunner,
                    log_sink: LogSink,
                    first_step: typing.Optional[int] = None) -> MonitorReport:
        """collect -> validate -> supervised start, strictly in order."""

        def step(offset, message):
            if first_step is None:
                logger.info(message)
            else:
                logger.info(f'[{first_step + offset}/5] {message}')

        step(0, 'Collecting gentxs and validating genesis')
        with stage('collect'):
            runner.run(self.config.daemon_cmd('genesis', 'collect-gentxs',
                                              home=workspace.home))
        with stage('validate'):
            runner.run(self.config.daemon_cmd('genesis', 'validate-genesis',
                                              home=workspace.home))

        step(1, 'Starting node and watching for panics')
        monitor = NodeHealthMonitor(self.config, log_sink)
        with stage('node'):
            report = monitor.run(
                self.config.daemon_cmd('start', home=workspace.home))
            report.raise_for_status()
        return report

    def report_log_tail(self, log_sink: LogSink) -> typing.List[str]:
        lines = log_sink.lines()
        if logs_parsing.find_panic(lines) is not None:
            count = self.config.panic_tail_lines
            logger.info(
                f'Panic detected - showing last {count} lines from logs:')
        else:
            count = self.config.tail_lines
            logger.info(f'Last {count} lines from logs:')
        log_tail = [
            logs_parsing.remove_colour_codes(line)
            for line in logs_parsing.tail(lines, count)
        ]
        for line in log_tail:
            logger.info(f'    {line}')
        return log_tail

    def report_summary(self, result: RunResult) -> None:
        log = logger.info if result.ok else logger.error
        log(result.summary_line())
        for i, file_result in enumerate(result.results):
            line = (f'    {i + 1}. {file_result.status} '
                    f'{os.path.basename(file_result.file)}')
            if not file_result.passed:
                line += f' - {file_result.message}'
            log(line)
