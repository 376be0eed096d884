import os
import subprocess
import threading
import time

import psutil
import pytest
from retrying import retry

from gentx_check.errors import (PanicDetectedError, ProcessExitedError,
                                SpawnError)
from gentx_check.monitor import MonitorState, NodeHealthMonitor, terminate
from gentx_check.runner import LogSink


@retry(stop_max_attempt_number=50, wait_fixed=100)
def wait_for_pid(home, name='node.pid'):
    with open(os.path.join(home, name)) as f:
        return int(f.read())


@pytest.fixture
def start_node(make_config):

    def _start_node(behavior='healthy', **overrides):
        config = make_config(behavior, **overrides)
        os.makedirs(config.home, exist_ok=True)
        monitor = NodeHealthMonitor(config, LogSink.fresh(config.log_file))
        report = monitor.run(config.daemon_cmd('start'))
        return monitor, report

    return _start_node


def test_healthy_node_survives_until_deadline(start_node):
    started = time.monotonic()
    monitor, report = start_node('healthy')

    assert report.ok
    assert report.state == MonitorState.TIMED_OUT
    assert report.exit_code is None
    assert report.panic is None
    assert report.checks >= 1
    assert time.monotonic() - started >= 0.6
    assert monitor.history == [
        MonitorState.STARTING, MonitorState.RUNNING, MonitorState.TIMED_OUT,
        MonitorState.TERMINATED
    ]
    assert not psutil.pid_exists(report.pid)
    report.raise_for_status()


def test_node_output_lands_in_log(start_node):
    monitor, _ = start_node('healthy')
    lines = monitor.log_sink.lines()
    assert lines[1].startswith('=== Executing: ')
    assert 'start --home' in lines[1]
    assert any('finalized block height=1' in line for line in lines)


def test_panic_written_while_running_is_detected(make_config):
    config = make_config('healthy', timeout=10)
    os.makedirs(config.home)
    log_sink = LogSink.fresh(config.log_file)
    monitor = NodeHealthMonitor(config, log_sink)

    def inject_panic():
        wait_for_pid(config.home)
        log_sink.write('panic: injected by test\nstack line 1\n')

    writer = threading.Thread(target=inject_panic)
    writer.start()
    started = time.monotonic()
    report = monitor.run(config.daemon_cmd('start'))
    writer.join()

    assert report.state == MonitorState.PANIC_DETECTED
    # one poll interval, the grace wait and some slack
    assert time.monotonic() - started < 5
    assert report.panic.line == 'panic: injected by test'
    assert report.panic.context[0] == 'panic: injected by test'
    assert report.panic.context[1] == 'stack line 1'
    assert monitor.history[-1] == MonitorState.TERMINATED
    assert not psutil.pid_exists(report.pid)

    with pytest.raises(PanicDetectedError) as excinfo:
        report.raise_for_status()
    assert excinfo.value.line_number == report.panic.line_number


def test_panic_context_includes_goroutine_dump(start_node):
    _, report = start_node('panic')

    assert report.state == MonitorState.PANIC_DETECTED
    assert not report.ok
    context = report.panic.context
    assert context[0].startswith('panic: runtime error')
    assert 'goroutine 1 [running]:' in context
    assert len(context) <= 51
    assert report.panic.line_number > 1


def test_panic_context_is_bounded(start_node):
    _, report = start_node('panic', panic_context_lines=2)
    assert len(report.panic.context) == 3
    assert report.panic.context[0].startswith('panic: ')


def test_node_exiting_early(start_node):
    _, report = start_node('exit')

    assert report.state == MonitorState.PROCESS_EXITED
    assert report.exit_code == 1
    assert report.elapsed < 0.6 + 0.5
    with pytest.raises(ProcessExitedError) as excinfo:
        report.raise_for_status()
    assert excinfo.value.exit_code == 1


def test_node_ignoring_sigterm_is_killed(start_node, make_config):
    monitor, report = start_node('stubborn', stop_timeout=0.3)

    assert report.ok
    assert monitor.history[-1] == MonitorState.TERMINATED
    pid = wait_for_pid(make_config().home)
    assert pid == report.pid
    assert not psutil.pid_exists(pid)


def test_missing_daemon_binary(make_config, tmpdir):
    config = make_config(daemon=(str(tmpdir.join('no-such-daemon')),))
    monitor = NodeHealthMonitor(config, LogSink(config.log_file))
    with pytest.raises(SpawnError):
        monitor.run(config.daemon_cmd('start'))
    assert monitor.history == [MonitorState.STARTING]


def gone(pid):
    # an orphan may linger as a zombie until its new parent reaps it
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


def test_node_and_child_share_one_stop_budget(make_config):
    config = make_config('stubborn-tree')
    os.makedirs(config.home)
    process = subprocess.Popen(config.daemon_cmd('start'),
                               stdout=subprocess.DEVNULL,
                               stderr=subprocess.DEVNULL)
    node_pid = wait_for_pid(config.home)
    helper_pid = wait_for_pid(config.home, 'helper.pid')

    started = time.monotonic()
    terminate(process, stop_timeout=1, settle_time=0.2)
    elapsed = time.monotonic() - started

    # one stop_timeout plus one settle_time, not one of each per process
    assert elapsed < 1 + 0.2 + 0.5
    assert process.returncode is not None
    assert gone(node_pid)
    assert gone(helper_pid)
