import argparse
import json
import logging
import sys
import typing

from .config import CONFIG_ENV_VAR, DEFAULT_CONFIG, load_config
from .configured_logger import new_logger
from .errors import GentxCheckError
from .pipeline import (FAILED, Mode, RunResult, ValidationPipeline,
                       discover_gentx_files)


def _get_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='check-genesis',
        description='Validate gentx files against a seed genesis: minimum '
        'fee, collect-gentxs, validate-genesis and a supervised node start.',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        'path',
        type=str,
        help='gentx JSON file, or directory whose *.json files are validated',
    )
    parser.add_argument(
        '--mode',
        choices=[mode.value for mode in Mode],
        default=Mode.BATCH.value,
        help='validate all files in one genesis, or each file on its own',
    )
    parser.add_argument(
        '-c',
        '--config',
        type=str,
        help=f'JSON config file, defaults to ${CONFIG_ENV_VAR}',
    )
    parser.add_argument('--network',
                        type=str,
                        help='network label reported in results')
    parser.add_argument('--chain-id',
                        type=str,
                        help='chain id written into client.toml')
    parser.add_argument('--home', type=str, help='daemon home directory')
    parser.add_argument('--genesis',
                        type=str,
                        help='seed genesis copied into the home directory')
    parser.add_argument('--log-file', type=str, help='daemon output log')
    parser.add_argument(
        '--timeout',
        type=float,
        help='seconds the node has to run without panicking',
    )
    parser.add_argument(
        '--json',
        action='store_true',
        default=False,
        help='print the result as JSON on stdout, logs go to stderr',
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        default=False,
        help='set to emit debug logs',
    )
    return parser


def _print_result(result: RunResult) -> None:
    print(json.dumps(result.to_json(), indent=2))


def _fatal(message: str, network: str) -> RunResult:
    return RunResult(status=FAILED,
                     message=message,
                     files_validated=0,
                     network_validated=network)


def main(argv: typing.Optional[typing.Sequence[str]] = None) -> int:
    args = _get_parser().parse_args(argv)
    logger = new_logger('gentx_check',
                        level=logging.DEBUG if args.debug else logging.INFO,
                        stderr=args.json)

    try:
        config = load_config(args.config,
                             network=args.network,
                             chain_id=args.chain_id,
                             home=args.home,
                             genesis=args.genesis,
                             log_file=args.log_file,
                             timeout=args.timeout)
    except (OSError, ValueError) as e:
        logger.error(f'Invalid configuration: {e}')
        if args.json:
            network = args.network or DEFAULT_CONFIG.network
            _print_result(_fatal(f'invalid configuration: {e}', network))
        return 1

    logger.info('=== WARDEN GENESIS TRANSACTION VALIDATOR ===')
    try:
        files = discover_gentx_files(args.path)
        result = ValidationPipeline(config).run(files, Mode(args.mode))
    except GentxCheckError as e:
        logger.error(f'Validation failed: {e}')
        if args.json:
            _print_result(_fatal(str(e), config.network))
        return 1

    if args.json:
        _print_result(result)
    if not result.ok:
        return 1
    logger.info('=== VALIDATION COMPLETE ===')
    return 0


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
