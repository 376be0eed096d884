#!/usr/bin/env python3
"""Stand-in for the chain daemon used by the test-suite.

Understands the subcommands the validator drives:

    init <moniker> --chain-id ID --home DIR
    genesis collect-gentxs --home DIR
    genesis validate-genesis --home DIR
    start --home DIR

`--behavior` picks how it misbehaves:

    healthy         start keeps producing blocks until stopped
    panic           start panics with a goroutine dump and exits
    exit            start exits on its own shortly after starting
    stubborn        start ignores SIGTERM
    stubborn-tree   start and a helper process it spawns both ignore SIGTERM
    collect-fail    collect-gentxs reports an invalid gentx
    validate-fail   validate-genesis rejects the genesis
"""
import argparse
import os
import signal
import subprocess
import sys
import time

STUBBORN_HELPER = '''
import os, signal, sys, time
signal.signal(signal.SIGTERM, signal.SIG_IGN)
with open(sys.argv[1], "w") as f:
    f.write(str(os.getpid()))
while True:
    time.sleep(1)
'''

CLIENT_TOML = '''# This is a TOML config file.
# For more information, see https://github.com/toml-lang/toml

###############################################################################
###                           Client Configuration                            ###
###############################################################################

# The network chain ID
chain-id = ""
# The keyring's backend
keyring-backend = "os"
# CLI output format (text|json)
output = "text"
# <host>:<port> to CometBFT RPC interface for this chain
node = "tcp://localhost:26657"
# Transaction broadcasting mode (sync|async)
broadcast-mode = "sync"
'''


def out(line):
    print(line, flush=True)


def err(line):
    print(line, file=sys.stderr, flush=True)


def do_init(args):
    config_dir = os.path.join(args.home, 'config')
    os.makedirs(config_dir, exist_ok=True)
    with open(os.path.join(config_dir, 'client.toml'), 'w') as f:
        f.write(CLIENT_TOML)
    out(f'{{"moniker":"{args.rest[1]}","chain_id":"{args.chain_id}"}}')
    return 0


def do_collect(args):
    gentx_dir = os.path.join(args.home, 'config', 'gentx')
    names = sorted(os.listdir(gentx_dir)) if os.path.isdir(gentx_dir) else []
    if args.behavior == 'collect-fail':
        err('Error: failed to validate gentx: invalid validator '
            'operator address')
        return 1
    if not names:
        err(f'Error: no gentx files found in {gentx_dir}')
        return 1
    with open(os.path.join(args.home, 'config', 'collected.txt'), 'w') as f:
        f.write('\n'.join(names) + '\n')
    out(f'collected {len(names)} gentxs')
    return 0


def do_validate(args):
    genesis = os.path.join(args.home, 'config', 'genesis.json')
    if args.behavior == 'validate-fail':
        err(f'Error: error validating genesis file {genesis}: '
            'duplicate validator found')
        return 1
    out(f'File at {genesis} is a valid genesis file')
    return 0


def do_start(args):
    with open(os.path.join(args.home, 'node.pid'), 'w') as f:
        f.write(str(os.getpid()))
    out('INF starting ABCI with CometBFT')
    if args.behavior in ('stubborn', 'stubborn-tree'):
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
    if args.behavior == 'stubborn-tree':
        subprocess.Popen([
            sys.executable, '-c', STUBBORN_HELPER,
            os.path.join(args.home, 'helper.pid')
        ])
    if args.behavior == 'exit':
        time.sleep(0.1)
        err('ERR node shut down: database is locked')
        return 1
    if args.behavior == 'panic':
        time.sleep(0.1)
        err('panic: runtime error: invalid memory address or nil pointer '
            'dereference')
        err('[signal SIGSEGV: segmentation violation code=0x1 addr=0x0]')
        err('')
        err('goroutine 1 [running]:')
        for i in range(5):
            err(f'github.com/warden-protocol/wardenprotocol/app.frame{i}()')
        return 2
    height = 0
    while True:
        height += 1
        out(f'INF finalized block height={height} module=state')
        time.sleep(0.05)


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument('--behavior', default='healthy')
    parser.add_argument('--home', required=True)
    parser.add_argument('--chain-id', default='')
    parser.add_argument('rest', nargs='*')
    args = parser.parse_args()

    command = tuple(args.rest[:2])
    if command[:1] == ('init',):
        return do_init(args)
    if command == ('genesis', 'collect-gentxs'):
        return do_collect(args)
    if command == ('genesis', 'validate-genesis'):
        return do_validate(args)
    if command[:1] == ('start',):
        return do_start(args)
    err(f'Error: unknown command {" ".join(args.rest)}')
    return 1


if __name__ == '__main__':
    sys.exit(main())
