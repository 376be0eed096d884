import json
import os
import sys

import pytest

from gentx_check.config import ValidatorConfig

FAKE_DAEMON = os.path.join(os.path.dirname(os.path.abspath(__file__)),
                           'fake_wardend.py')

SEED_GENESIS = {
    'genesis_time': '2025-01-01T00:00:00Z',
    'chain_id': 'barra_9191-1',
    'initial_height': '1',
    'app_state': {
        'genutil': {
            'gen_txs': []
        }
    },
}

# quick enough for tests, long enough for a couple of health checks
TEST_TIMINGS = dict(
    timeout=0.6,
    poll_interval=0.1,
    panic_wait=0.2,
    panic_context_lines=50,
    stop_timeout=1,
    settle_time=0.1,
)


def fake_daemon(behavior='healthy'):
    return (sys.executable, FAKE_DAEMON, '--behavior', behavior)


def gentx_document(amount='180000000000000000', denom='award'):
    fee = [] if amount is None else [{'denom': denom, 'amount': amount}]
    return {
        'body': {
            'messages': [{
                '@type': '/cosmos.staking.v1beta1.MsgCreateValidator',
                'description': {
                    'moniker': 'validator'
                },
            }],
            'memo': '',
        },
        'auth_info': {
            'signer_infos': [],
            'fee': {
                'amount': fee,
                'gas_limit': '200000',
            },
        },
        'signatures': [],
    }


@pytest.fixture
def make_config(tmpdir):
    """Builds a ValidatorConfig rooted in the test's tmpdir.

    The seed genesis is written once; every path lives under tmpdir so runs
    never share a workspace or log.
    """
    genesis = str(tmpdir.join('init_genesis.json'))
    with open(genesis, 'w') as f:
        json.dump(SEED_GENESIS, f, indent=2)

    def _make_config(behavior='healthy', **overrides):
        values = dict(
            daemon=fake_daemon(behavior),
            home=str(tmpdir.join('.warden')),
            genesis=genesis,
            log_file=str(tmpdir.join('logs.txt')),
        )
        values.update(TEST_TIMINGS)
        values.update(overrides)
        return ValidatorConfig(**values)

    return _make_config


@pytest.fixture
def write_gentx(tmpdir):
    gentx_dir = tmpdir.mkdir('gentx')

    def _write_gentx(name, amount='180000000000000000', denom='award'):
        path = str(gentx_dir.join(name))
        with open(path, 'w') as f:
            json.dump(gentx_document(amount, denom), f)
        return path

    _write_gentx.dir = str(gentx_dir)
    return _write_gentx
