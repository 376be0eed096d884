import enum
import json
import re
import typing

from .configured_logger import logger
from .errors import FeeError, ParseError, StagingError

_AMOUNT_RE = re.compile(r'[+-]?[0-9]+')


class FeeErrorReason(enum.Enum):
    EMPTY_FEE_LIST = 'empty-fee-list'
    EMPTY_AMOUNT = 'empty-amount'
    UNPARSEABLE_AMOUNT = 'unparseable-amount'
    BELOW_MINIMUM = 'below-minimum'


class Coin(typing.NamedTuple):
    denom: str
    amount: str


class GentxDocument(typing.NamedTuple):
    """The parts of a gentx document the fee check looks at.

    Only `auth_info.fee.amount` is decoded; everything else in the transaction
    is left to the daemon.  Missing sections read as an empty fee list.
    """
    fee: typing.Tuple[Coin, ...]

    @classmethod
    def from_json(cls, data: typing.Any) -> 'GentxDocument':
        coins = _section(_section(_section(data, 'auth_info'), 'fee'),
                         'amount',
                         default=[])
        if not isinstance(coins, list):
            raise ParseError('failed to parse gentx JSON: '
                             'auth_info.fee.amount is not a list')
        fee = []
        for coin in coins:
            if not isinstance(coin, dict):
                raise ParseError('failed to parse gentx JSON: '
                                 'fee entry is not an object')
            denom, amount = coin.get('denom', ''), coin.get('amount', '')
            if not isinstance(denom, str) or not isinstance(amount, str):
                raise ParseError('failed to parse gentx JSON: '
                                 'fee denom and amount must be strings')
            fee.append(Coin(denom=denom, amount=amount))
        return cls(fee=tuple(fee))


def _section(data, key, default=None):
    if data is None:
        return default
    if not isinstance(data, dict):
        raise ParseError(
            f'failed to parse gentx JSON: expected an object around {key!r}')
    value = data.get(key)
    return default if value is None else value


def load_gentx(path) -> GentxDocument:
    try:
        with open(path, 'rb') as f:
            raw = f.read()
    except OSError as e:
        raise StagingError(f'failed to read gentx file: {e}') from e
    try:
        data = json.loads(raw)
    except ValueError as e:
        raise ParseError(f'failed to parse gentx JSON: {e}') from e
    return GentxDocument.from_json(data)


def is_amount(amount: str) -> bool:
    """True for a base-10 integer string: optional sign, ASCII digits."""
    return isinstance(amount, str) and bool(_AMOUNT_RE.fullmatch(amount))


def _normalize(amount: str) -> typing.Tuple[int, str]:
    digits = amount.lstrip('+-').lstrip('0')
    if not digits:
        return 0, ''
    return (-1 if amount.startswith('-') else 1), digits


def parse_amount(amount: str) -> typing.Tuple[int, str]:
    """Splits an amount into its sign and its digits without leading zeros.

    The amount is never converted to `int`, so its length is unbounded.
    """
    if not is_amount(amount):
        raise FeeError(FeeErrorReason.UNPARSEABLE_AMOUNT,
                       f'invalid gentx fee format: {amount}')
    return _normalize(amount)


def compare_amounts(a: typing.Tuple[int, str],
                    b: typing.Tuple[int, str]) -> int:
    """Three-way comparison of two parsed amounts: -1, 0 or 1."""
    (sign_a, digits_a), (sign_b, digits_b) = a, b
    if sign_a != sign_b:
        return -1 if sign_a < sign_b else 1
    key_a, key_b = (len(digits_a), digits_a), (len(digits_b), digits_b)
    magnitude = (key_a > key_b) - (key_a < key_b)
    return magnitude * sign_a


def validate_fee(document: GentxDocument, threshold) -> Coin:
    """Enforces the minimum fee on the first fee entry of `document`.

    Args:
        document: Parsed gentx document.
        threshold: Minimum accepted amount, an int or a base-10 integer
            string.  Equal amounts pass.
    Returns:
        The fee entry that was checked.
    Raises:
        FeeError: With one of the `FeeErrorReason` values.
        ValueError: If `threshold` is not an integer.
    """
    threshold = str(threshold)
    if not is_amount(threshold):
        raise ValueError(f'invalid required fee format: {threshold}')
    if not document.fee:
        raise FeeError(FeeErrorReason.EMPTY_FEE_LIST, 'gentx fee is empty')
    coin = document.fee[0]
    if coin.amount == '':
        raise FeeError(FeeErrorReason.EMPTY_AMOUNT,
                       'gentx fee amount is empty')
    if compare_amounts(parse_amount(coin.amount), _normalize(threshold)) < 0:
        raise FeeError(
            FeeErrorReason.BELOW_MINIMUM,
            f'gentx fee is less than minimum required fee: '
            f'{coin.amount} / {threshold}')
    return coin


def check_gentx_fee(path, threshold) -> Coin:
    document = load_gentx(path)
    if document.fee:
        logger.info(f'Found gentx fee: {document.fee[0].amount} '
                    f'{document.fee[0].denom}')
    logger.info(f'Required minimum fee: {threshold}')
    coin = validate_fee(document, threshold)
    logger.info('Fee validation passed')
    return coin
