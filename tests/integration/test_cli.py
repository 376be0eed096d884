import json
import os

import pytest

from gentx_check.cli import main
from gentx_check.test_utils.cli import CliHelpers


@pytest.fixture
def cli(make_config, tmpdir):

    def _cli(behavior='healthy', **overrides):
        config = make_config(behavior, **overrides)
        path = str(tmpdir.join(f'{behavior}.config.json'))
        with open(path, 'w') as f:
            json.dump(config._asdict(), f)
        return CliHelpers(path, cwd=str(tmpdir))

    return _cli


def test_directory_passes(cli, write_gentx):
    write_gentx('gentx-a.json')
    write_gentx('gentx-b.json')
    code, result = cli().validate_json(write_gentx.dir)
    assert code == 0
    assert result['status'] == 'passed'
    assert result['files_validated'] == 2
    assert result['network_validated'] == 'mainnet'
    assert result['failed_files'] == []


def test_summary_line_in_logs(cli, write_gentx):
    process = cli().run_command(write_gentx('gentx-a.json'), '--network',
                                'devnet')
    assert process.return_code == 0, process.err
    assert ('Status: passed, Network: devnet, Files: 1, '
            'Message: Validated 1 files') in process.out


def test_low_fee_exits_nonzero(cli, write_gentx):
    write_gentx('gentx-a.json')
    low = write_gentx('gentx-b.json', amount='1')
    code, result = cli().validate_json(write_gentx.dir, '--mode', 'per-file')
    assert code == 1
    assert result['status'] == 'failed'
    assert result['files_validated'] == 1
    assert result['failed_files'] == [low]


def test_empty_directory_exits_zero(cli, tmpdir):
    code, result = cli().validate_json(str(tmpdir.mkdir('empty')))
    assert code == 0
    assert result['status'] == 'no-files'


def test_node_panic_exits_nonzero(cli, write_gentx):
    code, result = cli('panic').validate_json(write_gentx('gentx-a.json'))
    assert code == 1
    assert len(result['log_tail']) == 15
    assert 'panic found in log' in result['results'][0]['message']


def test_unknown_mode_is_usage_error(cli, write_gentx):
    process = cli().run_command(write_gentx('gentx-a.json'), '--mode', 'all')
    assert process.return_code == 2


def test_missing_path(cli, tmpdir):
    process = cli().run_command(str(tmpdir.join('absent')))
    assert process.return_code == 1
    assert 'path does not exist' in process.out


def test_main_rejects_unknown_config_key(tmpdir, write_gentx):
    path = tmpdir.join('bad.json')
    path.write('{"daemons": ["wardend"]}')
    assert main([write_gentx('gentx-a.json'), '--config', str(path)]) == 1


def test_main_uses_command_line_home(make_config, tmpdir, write_gentx):
    path = tmpdir.join('config.json')
    path.write(json.dumps(make_config()._asdict()))
    home = str(tmpdir.join('other-home'))
    assert main([
        write_gentx('gentx-a.json'), '--config',
        str(path), '--home', home
    ]) == 0
    assert os.path.exists(os.path.join(home, 'config', 'collected.txt'))


def test_missing_path_still_prints_json(cli, tmpdir):
    code, result = cli().validate_json(str(tmpdir.join('absent')))
    assert code == 1
    assert result['status'] == 'failed'
    assert result['files_validated'] == 0
    assert result['network_validated'] == 'mainnet'
    assert 'path does not exist' in result['message']


def test_missing_daemon_binary_prints_json(cli, write_gentx, tmpdir):
    helpers = cli(daemon=[str(tmpdir.join('no-such-daemon'))])
    code, result = helpers.validate_json(write_gentx('gentx-a.json'))
    assert code == 1
    assert result['status'] == 'failed'
    assert result['message'].startswith('setup: ')


def test_wrongly_typed_config_value(tmpdir, write_gentx):
    path = tmpdir.join('typed.json')
    path.write('{"timeout": "5"}')
    code, result = CliHelpers(str(path)).validate_json(
        write_gentx('gentx-a.json'))
    assert code == 1
    assert result['status'] == 'failed'
    assert 'timeout must be a number' in result['message']
