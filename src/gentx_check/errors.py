import typing


class GentxCheckError(Exception):

    def __init__(self, message, details=None, stage=None):
        """
        The `message` is the one-line summary shown to the user and stored in
        per-file results.  The `details` carry any extra diagnostic text.
        The `stage` names the pipeline stage that failed, if known.
        """
        self.message = message
        self.details = details
        self.stage = stage
        super().__init__(message)

    def __str__(self):
        text = self.message
        if self.stage:
            text = f'{self.stage}: {text}'
        if self.details:
            text = f'{text}, details: {self.details}'
        return text

    def with_stage(self, stage: str) -> 'GentxCheckError':
        """Tags the error with the stage it surfaced in and returns it."""
        if self.stage is None:
            self.stage = stage
        return self


class StagingError(GentxCheckError):
    """Filesystem or workspace preparation failure.  Aborts the whole run."""


class ParseError(GentxCheckError):
    """The gentx document could not be decoded."""


class FeeError(GentxCheckError):

    def __init__(self, reason, message, details=None):
        super().__init__(message, details)
        self.reason = reason


class SpawnError(GentxCheckError):
    """The daemon executable could not be launched at all."""


class ProcessError(GentxCheckError):

    def __init__(self, cmd: typing.Sequence[str], exit_code: int,
                 diagnostic: typing.Optional[str] = None):
        super().__init__(f'command failed: exit status {exit_code}',
                         details=diagnostic)
        self.cmd = list(cmd)
        self.exit_code = exit_code
        self.diagnostic = diagnostic


class PanicDetectedError(GentxCheckError):

    def __init__(self, line: str, line_number: int,
                 context: typing.Sequence[str]):
        super().__init__(f'panic found in log: {line}')
        self.line = line
        self.line_number = line_number
        self.context = list(context)


class ProcessExitedError(GentxCheckError):

    def __init__(self, exit_code: typing.Optional[int]):
        super().__init__(
            f'node process exited unexpectedly (exit status {exit_code})')
        self.exit_code = exit_code
