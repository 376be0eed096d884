import json
import shlex
import sys

import delegator


class CliHelpers(object):

    def __init__(self, config_path, cwd=None):
        self._config_path = config_path
        self._cwd = cwd

    def run_command(self, path, *options):
        command = [sys.executable, '-m', 'gentx_check.cli', path,
                   '--config', self._config_path] + list(options)
        return delegator.run(' '.join(shlex.quote(arg) for arg in command),
                             cwd=self._cwd)

    def validate(self, path, *options):
        process = self.run_command(path, *options)
        assert process.return_code == 0, process.err
        return process.out

    def validate_json(self, path, *options):
        process = self.run_command(path, '--json', *options)
        return process.return_code, json.loads(process.out)
