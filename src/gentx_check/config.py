import json
import os
import typing

from .configured_logger import logger
from .fee import is_amount


class ValidatorConfig(typing.NamedTuple):
    """Everything a validation run needs to know, fixed for its lifetime.

    Attributes:
        daemon: Command prefix used to invoke the chain daemon.  Subcommands
            and `--home` are appended to it.
        home: Workspace home directory handed to the daemon.
        chain_id: Chain identifier written into client.toml.
        network: Human readable network label reported in results.
        genesis: Seed genesis document copied into the workspace.
        log_file: Append-only log sink shared by every subprocess.
        min_fee: Minimum fee amount as a base-10 integer string.
        timeout: Seconds the node must run without panicking to pass.
        poll_interval: Seconds between two health checks.
        panic_wait: Seconds to wait for trailing output after a panic.
        panic_context_lines: Lines reported after the panic line.
        stop_timeout: Seconds allowed for a graceful stop before SIGKILL.
        settle_time: Seconds to wait after a forced kill.
        tail_lines: Log lines shown in the final report.
        panic_tail_lines: Log lines shown when the log contains a panic.
    """
    daemon: typing.Tuple[str, ...] = ('wardend',)
    home: str = '.warden'
    chain_id: str = 'barra_9191-1'
    network: str = 'mainnet'
    genesis: str = './init_genesis.json'
    log_file: str = 'logs.txt'
    min_fee: str = '180000000000000000'
    timeout: float = 60
    poll_interval: float = 5
    panic_wait: float = 5
    panic_context_lines: int = 50
    stop_timeout: float = 5
    settle_time: float = 1
    tail_lines: int = 5
    panic_tail_lines: int = 15

    def daemon_cmd(self, *args: str, home: typing.Optional[str] = None
                  ) -> typing.List[str]:
        """Builds a daemon invocation, e.g. `daemon_cmd('start')`."""
        return list(self.daemon) + list(args) + ['--home', home or self.home]

    def replace(self, **overrides) -> 'ValidatorConfig':
        return validate_config(self._replace(**overrides))


DEFAULT_CONFIG = ValidatorConfig()
CONFIG_ENV_VAR = 'GENTX_CHECK_CONFIG'


def validate_config(config: ValidatorConfig) -> ValidatorConfig:
    if isinstance(config.daemon, str):
        config = config._replace(daemon=(config.daemon,))
    elif isinstance(config.daemon, (list, tuple)):
        config = config._replace(daemon=tuple(config.daemon))
    else:
        raise ValueError('daemon must be a string or a list of strings')
    if not config.daemon:
        raise ValueError('daemon command must not be empty')
    if not all(isinstance(arg, str) for arg in config.daemon):
        raise ValueError('daemon must be a string or a list of strings')
    for key in ('home', 'chain_id', 'network', 'genesis', 'log_file'):
        if not isinstance(getattr(config, key), str):
            raise ValueError(f'{key} must be a string')

    min_fee = config.min_fee
    if isinstance(min_fee, int) and not isinstance(min_fee, bool):
        min_fee = str(min_fee)
    if not is_amount(min_fee):
        raise ValueError(f'invalid required fee format: {config.min_fee}')
    config = config._replace(min_fee=min_fee)

    for key in ('timeout', 'poll_interval', 'panic_wait', 'stop_timeout',
                'settle_time'):
        value = getattr(config, key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f'{key} must be a number, got {value!r}')
        if value < 0:
            raise ValueError(f'{key} must not be negative')
    for key in ('panic_context_lines', 'tail_lines', 'panic_tail_lines'):
        value = getattr(config, key)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f'{key} must be an integer, got {value!r}')
        if value < 0:
            raise ValueError(f'{key} must not be negative')
    if config.poll_interval == 0:
        raise ValueError('poll_interval must be positive')
    return config


def load_config(path: typing.Optional[str] = None,
                **overrides) -> ValidatorConfig:
    """Loads the configuration for a run.

    Starts from `DEFAULT_CONFIG`, then applies the JSON file given as `path`
    or named by the GENTX_CHECK_CONFIG environment variable, then `overrides`.
    Overrides whose value is None are ignored so command line options that
    were not given do not shadow the file.

    Raises:
        ValueError: On unknown configuration keys or invalid values.
    """
    values = {}

    config_file = path or os.environ.get(CONFIG_ENV_VAR, '')
    if config_file:
        try:
            with open(config_file) as f:
                values.update(json.load(f))
            logger.info(f"Load config from {config_file}")
        except FileNotFoundError:
            logger.info(
                f"Failed to load config file {config_file}, use default config")
    values.update({k: v for k, v in overrides.items() if v is not None})

    unknown = set(values) - set(ValidatorConfig._fields)
    if unknown:
        raise ValueError(
            f'Unknown configuration option: {", ".join(sorted(unknown))}')

    config = validate_config(DEFAULT_CONFIG._replace(**values))
    logger.debug(f"Use config {config}")
    return config
