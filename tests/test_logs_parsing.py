from gentx_check import logs_parsing

LOG = [
    '',
    '=== Executing: wardend start --home .warden ===',
    'INF starting ABCI with CometBFT',
    'ERR Failed to dial peer',
    'panic: runtime error: index out of range',
    'goroutine 1 [running]:',
    'main.main()',
]


def test_find_panic_is_case_sensitive():
    match = logs_parsing.find_panic(LOG)
    assert match.index == 4
    assert match.line_number == 5
    assert logs_parsing.find_panic(['PANIC: shouting', 'panicked']) is None


def test_find_error_is_case_insensitive_and_first():
    match = logs_parsing.find_error(LOG)
    assert match.line == 'ERR Failed to dial peer'
    assert logs_parsing.find_error(['Permission Denied']).index == 0
    assert logs_parsing.find_error(['all good', 'height=3']) is None


def test_context_after_is_bounded_by_log_end():
    assert logs_parsing.context_after(LOG, 4, 50) == LOG[4:]
    assert logs_parsing.context_after(LOG, 4, 1) == LOG[4:6]


def test_tail():
    assert logs_parsing.tail(LOG, 2) == ['goroutine 1 [running]:', 'main.main()']
    assert logs_parsing.tail(LOG, 100) == LOG
    assert logs_parsing.tail(LOG, 0) == []


def test_remove_colour_codes():
    line = '\x1b[90m2:04PM\x1b[0m \x1b[32mINF\x1b[0m committed state'
    assert logs_parsing.remove_colour_codes(line) == '2:04PM INF committed state'


def test_read_lines_from_offset(tmpdir):
    path = tmpdir.join('logs.txt')
    path.write_binary(b'old line\nnew line\r\nbad \xff byte\n')
    assert logs_parsing.read_lines(str(path), len(b'old line\n')) == [
        'new line', 'bad � byte'
    ]
    assert logs_parsing.read_lines(str(tmpdir.join('absent.txt'))) == []
