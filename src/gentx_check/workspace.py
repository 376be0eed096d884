import os
import shutil
import typing

from .config import ValidatorConfig
from .configured_logger import logger
from .errors import GentxCheckError, StagingError
from .runner import ExternalProcessRunner

CHAIN_ID_KEY = 'chain-id'


def rewrite_chain_id(content: str, chain_id: str) -> str:
    """Points the `chain-id` entry of a client.toml text at `chain_id`.

    The first line whose stripped form starts with `chain-id` and contains an
    assignment is replaced.  Without such a line a new one is inserted at the
    first blank line, or at the top if there is none.  All other lines keep
    their content and order.
    """
    new_line = f'{CHAIN_ID_KEY} = "{chain_id}"'
    lines = content.split('\n')
    for i, line in enumerate(lines):
        trimmed = line.strip()
        if trimmed.startswith(CHAIN_ID_KEY) and '=' in trimmed:
            lines[i] = new_line
            return '\n'.join(lines)

    insert_index = 0
    for i, line in enumerate(lines):
        if line.strip() == '':
            insert_index = i
            break
    lines.insert(insert_index, new_line)
    return '\n'.join(lines)


class ValidationWorkspace:
    """The daemon home a validation run works in.

    Layout under `home`:

        config/client.toml
        config/genesis.json
        config/gentx/<staged gentx files>
    """

    def __init__(self, home: str, config: ValidatorConfig,
                 runner: ExternalProcessRunner):
        self.home = home
        self.config = config
        self.runner = runner

    @property
    def config_dir(self) -> str:
        return os.path.join(self.home, 'config')

    @property
    def gentx_dir(self) -> str:
        return os.path.join(self.config_dir, 'gentx')

    @property
    def client_config_path(self) -> str:
        return os.path.join(self.config_dir, 'client.toml')

    @property
    def genesis_path(self) -> str:
        return os.path.join(self.config_dir, 'genesis.json')

    def prepare(self, seed_genesis: typing.Optional[str] = None) -> None:
        """Creates directories, fixes client.toml and places the seed genesis.

        Raises:
            StagingError: If any step fails.  The original exception is
                chained as the cause.
        """
        seed_genesis = seed_genesis or self.config.genesis
        self.setup_directories()
        self.update_client_config()
        self.copy_genesis(seed_genesis)

    def setup_directories(self) -> None:
        logger.info(f'Creating directory: {self.gentx_dir}')
        try:
            os.makedirs(self.gentx_dir, exist_ok=True)
        except OSError as e:
            raise StagingError(f'failed to setup directories: {e}') from e

    def init_client_config(self) -> None:
        logger.info(f'{self.client_config_path} does not exist, '
                    'running daemon init')
        cmd = self.config.daemon_cmd('init',
                                     'temp-node',
                                     '--chain-id',
                                     self.config.chain_id,
                                     home=self.home)
        try:
            self.runner.run(cmd)
        except GentxCheckError as e:
            raise StagingError(f'failed to initialize daemon config: {e}') from e

    def update_client_config(self) -> None:
        if not os.path.exists(self.client_config_path):
            self.init_client_config()

        try:
            with open(self.client_config_path) as f:
                content = f.read()
        except OSError as e:
            raise StagingError(f'failed to read client.toml: {e}') from e

        updated = rewrite_chain_id(content, self.config.chain_id)
        try:
            with open(self.client_config_path, 'w') as f:
                f.write(updated)
        except OSError as e:
            raise StagingError(
                f'failed to write updated client.toml: {e}') from e
        logger.info(f'Updated chain-id to: {self.config.chain_id}')

    def copy_genesis(self, seed_genesis: str) -> None:
        logger.info(f'Copying {seed_genesis} -> {self.genesis_path}')
        try:
            shutil.copyfile(seed_genesis, self.genesis_path)
        except OSError as e:
            raise StagingError(f'failed to copy initial genesis: {e}') from e

    def stage(self, gentx_files: typing.Iterable[str]) -> typing.List[str]:
        """Copies gentx files into config/gentx under their base names.

        Files sharing a base name overwrite each other.
        """
        staged = []
        for gentx_file in gentx_files:
            dst = os.path.join(self.gentx_dir, os.path.basename(gentx_file))
            logger.info(f'Copying gentx file to: {dst}')
            try:
                shutil.copyfile(gentx_file, dst)
            except OSError as e:
                raise StagingError(
                    f'failed to copy gentx file {gentx_file}: {e}') from e
            staged.append(dst)
        return staged
