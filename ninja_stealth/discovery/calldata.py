"""
Calldata unwrapping — recover the ephemeral key from a payment transaction.

A payment reaches the contract in one of these shapes, tried in order:

- ``DirectCall``      ``sendToStealth(...)`` sent straight to the contract
- ``UserOperations``  ERC-4337 ``handleOps(ops[], beneficiary)``; each op's
                      callData is a smart-wallet ``execute``
- ``SingleForward``   smart-wallet ``execute(target, value, data)``
- ``BatchForward``    smart-wallet ``execute((target, value, data)[])``

At most two forwarding layers are followed (handleOps → execute →
sendToStealth). Forwarded calls whose target is not the payment contract
are ignored. Anything else is ``NotFound``: unknown shapes are routine
when scanning, not errors.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Union

from eth_abi import decode
from eth_abi.exceptions import DecodingError

from ..ledger import contract

logger = logging.getLogger("ninja.scanner")

HANDLE_OPS = (
    "handleOps((address,uint256,bytes,bytes,uint256,uint256,uint256,"
    "uint256,uint256,bytes,bytes)[],address)"
)
EXECUTE_SINGLE = "execute(address,uint256,bytes)"
EXECUTE_BATCH = "execute((address,uint256,bytes)[])"

HANDLE_OPS_SELECTOR = contract.function_selector(HANDLE_OPS)  # 0x1fad948c
EXECUTE_SINGLE_SELECTOR = contract.function_selector(EXECUTE_SINGLE)  # 0xb61d27f6
EXECUTE_BATCH_SELECTOR = contract.function_selector(EXECUTE_BATCH)  # 0x34fcd5be

_USER_OPERATION = (
    "(address,uint256,bytes,bytes,uint256,uint256,uint256,uint256,uint256,bytes,bytes)"
)
_CALL_DATA_INDEX = 3
_CALL = "(address,uint256,bytes)"


# ---------------------------------------------------------------------------
# Payload shapes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ForwardedCall:
    target: str
    value: int
    data: bytes


@dataclass(frozen=True)
class DirectCall:
    data: bytes


@dataclass(frozen=True)
class SingleForward:
    call: ForwardedCall


@dataclass(frozen=True)
class BatchForward:
    calls: tuple[ForwardedCall, ...]


@dataclass(frozen=True)
class UserOperations:
    call_datas: tuple[bytes, ...]


Payload = Union[DirectCall, SingleForward, BatchForward, UserOperations]


@dataclass(frozen=True)
class Found:
    ephemeral_public_key: bytes


@dataclass(frozen=True)
class NotFound:
    reason: str = ""


ExtractResult = Union[Found, NotFound]


def _forwarded(raw: tuple) -> ForwardedCall:
    target, value, data = raw
    return ForwardedCall(target=target.lower(), value=value, data=bytes(data))


def classify(payload: bytes) -> Optional[Payload]:
    """Decode the outer shape of a payload, or None if it is not recognized.

    Raises:
        eth_abi.exceptions.DecodingError: The selector matched but the
            arguments do not decode.
    """
    payload = bytes(payload)
    selector, args = payload[:4], payload[4:]
    if selector == contract.SEND_TO_STEALTH_SELECTOR:
        return DirectCall(payload)
    if selector == HANDLE_OPS_SELECTOR:
        ops, _beneficiary = decode([f"{_USER_OPERATION}[]", "address"], args)
        return UserOperations(tuple(bytes(op[_CALL_DATA_INDEX]) for op in ops))
    if selector == EXECUTE_SINGLE_SELECTOR:
        return SingleForward(_forwarded(decode(["address", "uint256", "bytes"], args)))
    if selector == EXECUTE_BATCH_SELECTOR:
        (calls,) = decode([f"{_CALL}[]"], args)
        return BatchForward(tuple(_forwarded(call) for call in calls))
    return None


def _from_direct(data: bytes) -> Optional[bytes]:
    try:
        _stealth, _amount, ephemeral = contract.decode_send_to_stealth(data)
    except (DecodingError, ValueError) as err:
        logger.debug("Undecodable sendToStealth call: %s", err)
        return None
    return bytes(ephemeral)


def _from_forwarded(calls, contract_address: str) -> Optional[bytes]:
    for call in calls:
        if call.target != contract_address:
            continue
        if bytes(call.data[:4]) != contract.SEND_TO_STEALTH_SELECTOR:
            continue
        ephemeral = _from_direct(call.data)
        if ephemeral is not None:
            return ephemeral
    return None


def _from_wallet_call(call_data: bytes, contract_address: str) -> Optional[bytes]:
    try:
        shape = classify(call_data)
    except DecodingError as err:
        logger.debug("Undecodable smart wallet call: %s", err)
        return None
    if isinstance(shape, SingleForward):
        return _from_forwarded((shape.call,), contract_address)
    if isinstance(shape, BatchForward):
        return _from_forwarded(shape.calls, contract_address)
    # a user operation wrapping another handleOps is not followed
    return None


def extract_ephemeral_key(payload: bytes, contract_address: str) -> ExtractResult:
    """Recover the ``sendToStealth`` ephemeral key carried by ``payload``.

    Args:
        payload: Raw transaction input.
        contract_address: Payment contract address; forwarded calls to any
            other target are ignored.

    Returns:
        ``Found(ephemeral_public_key)`` or ``NotFound(reason)``.
    """
    contract_address = contract_address.lower()
    try:
        shape = classify(payload)
    except DecodingError as err:
        return NotFound(f"undecodable payload: {err}")

    ephemeral = None
    if shape is None:
        selector = bytes(payload[:4])
        if selector in contract.CONTRACT_SELECTORS:
            return NotFound(f"not a payment: {contract.CONTRACT_SELECTORS[selector]}")
        return NotFound("unknown selector 0x" + selector.hex())
    if isinstance(shape, DirectCall):
        ephemeral = _from_direct(shape.data)
    elif isinstance(shape, SingleForward):
        ephemeral = _from_forwarded((shape.call,), contract_address)
    elif isinstance(shape, BatchForward):
        ephemeral = _from_forwarded(shape.calls, contract_address)
    elif isinstance(shape, UserOperations):
        for call_data in shape.call_datas:
            ephemeral = _from_wallet_call(call_data, contract_address)
            if ephemeral is not None:
                break

    if ephemeral is None:
        return NotFound(f"no sendToStealth call in {type(shape).__name__}")
    return Found(ephemeral)
