import sys

import pytest

from gentx_check.errors import ProcessError, SpawnError
from gentx_check.runner import ExternalProcessRunner, LogSink


def python(code):
    return [sys.executable, '-c', code]


@pytest.fixture
def log_sink(tmpdir):
    return LogSink(tmpdir.join('logs').join('run.txt'))


def test_success_writes_header_output_and_trailer(log_sink):
    ExternalProcessRunner(log_sink).run(python('print("hello")'))
    lines = log_sink.lines()
    assert lines[0] == ''
    assert lines[1].startswith('=== Executing: ')
    assert lines[1].endswith(' ===')
    assert lines[2:] == ['hello', '=== Command completed successfully ===']


def test_stderr_is_captured(log_sink):
    ExternalProcessRunner(log_sink).run(
        python('import sys; sys.stderr.write("to stderr\\n")'))
    assert 'to stderr' in log_sink.lines()


def test_nonzero_exit_carries_first_matching_line(log_sink, tmpdir):
    script = tmpdir.join('daemon.py')
    script.write('import sys\n'
                 'print("step one done")\n'
                 'print("Error: gentx signature mismatch")\n'
                 'print("Error: second problem")\n'
                 'sys.exit(3)\n')
    cmd = [sys.executable, str(script)]
    with pytest.raises(ProcessError) as excinfo:
        ExternalProcessRunner(log_sink).run(cmd)
    e = excinfo.value
    assert e.exit_code == 3
    assert e.diagnostic == ('error detected in log: '
                            'Error: gentx signature mismatch')
    assert 'exit status 3' in str(e)
    assert log_sink.lines()[-1] == (
        '=== Command failed with error: exit status 3 ===')


def test_failure_trailer_is_the_fallback_diagnostic(log_sink):
    with pytest.raises(ProcessError) as excinfo:
        ExternalProcessRunner(log_sink).run(
            python('print("quiet"); raise SystemExit(4)'))
    assert excinfo.value.diagnostic == (
        'error detected in log: '
        '=== Command failed with error: exit status 4 ===')


def test_missing_executable_is_spawn_error(log_sink, tmpdir):
    with pytest.raises(SpawnError):
        ExternalProcessRunner(log_sink).run(
            [str(tmpdir.join('no-such-daemon')), 'start'])
    assert log_sink.lines()[-1].startswith('=== Command failed with error: ')


def test_runs_are_appended_in_order(log_sink):
    runner = ExternalProcessRunner(log_sink)
    runner.run(python('print("first")'))
    runner.run(python('print("second")'))
    lines = log_sink.lines()
    assert lines.index('first') < lines.index('second')
    assert len([l for l in lines if l.startswith('=== Executing')]) == 2


def test_fresh_sink_skips_earlier_output(tmpdir):
    path = str(tmpdir.join('logs.txt'))
    old = LogSink(path)
    old.write('Error: left over from yesterday\n')

    sink = LogSink.fresh(path)
    assert sink.lines() == []
    with pytest.raises(ProcessError) as excinfo:
        ExternalProcessRunner(sink).run(python('raise SystemExit(1)'))
    assert excinfo.value.diagnostic.endswith('exit status 1 ===')
    # the file itself is never truncated
    assert old.lines()[0] == 'Error: left over from yesterday'


def test_segment_covers_only_new_output(tmpdir):
    sink = LogSink.fresh(str(tmpdir.join('logs.txt')))
    sink.write('one\n')
    segment = sink.segment()
    segment.write('two\n')
    assert sink.lines() == ['one', 'two']
    assert segment.lines() == ['two']


def test_missing_log_reads_empty(tmpdir):
    assert LogSink(tmpdir.join('absent.txt')).lines() == []
