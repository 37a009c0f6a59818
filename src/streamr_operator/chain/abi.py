"""
Contract descriptors - ABI loading, call encoding and result decoding.

A descriptor is built once from an ABI (fetched from a Polygonscan-style
explorer or read from a JSON file) and is immutable afterwards, so any
number of threads may encode and decode through it without locking.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

import httpx
from eth_abi import decode, encode, is_encodable_type
from eth_abi.exceptions import ABITypeError, ParseError
from eth_abi.exceptions import DecodingError as AbiDecodingError
from eth_abi.exceptions import EncodingError as AbiEncodingError
from eth_hash.auto import keccak

from ..errors import DecodingError, DescriptorError, EncodingError, RemoteError

logger = logging.getLogger(__name__)

DEFAULT_EXPLORER_URL = "https://api.polygonscan.com/api"


def to_checksum_address(address: str) -> str:
    """Convert an address to EIP-55 checksummed format.

    eth-account requires checksummed addresses in transaction fields.
    """
    addr = address.lower().replace("0x", "")
    if len(addr) != 40:
        raise ValueError(f"Invalid address: {address}")
    addr_hash = keccak(addr.encode("utf-8")).hex()
    result = "0x"
    for i, c in enumerate(addr):
        if c in "abcdef":
            result += c.upper() if int(addr_hash[i], 16) >= 8 else c
        else:
            result += c
    return result


def _canonical_type(param: Mapping[str, Any]) -> str:
    """Render an ABI parameter as an eth-abi type string.

    Tuples are expanded from their components, keeping any array suffix
    (``tuple[]`` becomes ``(address,uint256)[]``).
    """
    abi_type = param.get("type")
    if not isinstance(abi_type, str) or not abi_type:
        raise DescriptorError(f"Parameter without a type: {param!r}")
    if abi_type.startswith("tuple"):
        components = param.get("components")
        if not isinstance(components, list):
            raise DescriptorError(f"Tuple parameter without components: {param!r}")
        inner = ",".join(_canonical_type(c) for c in components)
        return f"({inner}){abi_type[len('tuple'):]}"
    return abi_type


@dataclass(frozen=True)
class MethodSpec:
    name: str
    inputs: tuple[str, ...]
    outputs: tuple[str, ...]

    @property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.inputs)})"

    @property
    def selector(self) -> bytes:
        # NOTE: Keccak-256 != SHA3-256 (NIST). Never use hashlib.sha3_256 here.
        return keccak(self.signature.encode("utf-8"))[:4]

    @classmethod
    def from_entry(cls, entry: Mapping[str, Any]) -> "MethodSpec":
        name = entry.get("name")
        if not isinstance(name, str) or not name:
            raise DescriptorError(f"Function entry without a name: {entry!r}")
        try:
            inputs = tuple(_canonical_type(p) for p in entry.get("inputs", []))
            outputs = tuple(_canonical_type(p) for p in entry.get("outputs", []))
        except (AttributeError, TypeError) as exc:
            raise DescriptorError(f"Malformed parameters for {name}: {exc}") from exc
        for abi_type in inputs + outputs:
            try:
                encodable = is_encodable_type(abi_type)
            except (ABITypeError, ParseError, ValueError) as exc:
                raise DescriptorError(f"Invalid ABI type {abi_type!r} in {name}: {exc}") from exc
            if not encodable:
                raise DescriptorError(f"Unsupported ABI type {abi_type!r} in {name}")
        return cls(name=name, inputs=inputs, outputs=outputs)


class ContractDescriptor:
    """Callable methods of one contract plus its address."""

    def __init__(self, address: str, methods: Mapping[str, MethodSpec]) -> None:
        try:
            self._address = to_checksum_address(address)
        except ValueError as exc:
            raise DescriptorError(str(exc)) from exc
        self._methods = MappingProxyType(dict(methods))

    @classmethod
    def from_abi(cls, address: str, abi: Any) -> "ContractDescriptor":
        if not isinstance(abi, list):
            raise DescriptorError("ABI must be a JSON array")

        methods: dict[str, MethodSpec] = {}
        for entry in abi:
            if not isinstance(entry, dict):
                raise DescriptorError(f"ABI entry is not an object: {entry!r}")
            if entry.get("type", "function") != "function":
                continue
            spec = MethodSpec.from_entry(entry)
            if spec.name in methods:
                logger.warning("Ignoring overload %s of %s", spec.signature, spec.name)
                continue
            methods[spec.name] = spec

        if not methods:
            raise DescriptorError("ABI declares no functions")
        return cls(address, methods)

    @classmethod
    def from_json(cls, address: str, abi_json: str) -> "ContractDescriptor":
        try:
            abi = json.loads(abi_json)
        except json.JSONDecodeError as exc:
            raise DescriptorError(f"Invalid ABI JSON: {exc}") from exc
        return cls.from_abi(address, abi)

    @property
    def address(self) -> str:
        return self._address

    @property
    def methods(self) -> Mapping[str, MethodSpec]:
        return self._methods

    def method(self, name: str) -> MethodSpec:
        try:
            return self._methods[name]
        except KeyError:
            raise EncodingError(f"Function {name} not found in ABI") from None

    def encode_call(self, method: str, args: Optional[list] = None) -> bytes:
        """ABI-encode a function call to calldata bytes."""
        spec = self.method(method)
        args = list(args or [])
        if len(args) != len(spec.inputs):
            raise EncodingError(
                f"{spec.signature} takes {len(spec.inputs)} arguments, got {len(args)}"
            )
        try:
            encoded_args = encode(list(spec.inputs), args) if args else b""
        except (AbiEncodingError, TypeError, ValueError, OverflowError) as exc:
            raise EncodingError(f"Cannot encode arguments for {spec.signature}: {exc}") from exc
        return spec.selector + encoded_args

    def decode_result(self, method: str, data: bytes) -> tuple:
        """ABI-decode the return data of ``method`` into a tuple of values."""
        spec = self.method(method)
        if not spec.outputs:
            return ()
        try:
            return tuple(decode(list(spec.outputs), data))
        except (AbiDecodingError, TypeError, ValueError, OverflowError) as exc:
            raise DecodingError(
                f"Cannot decode {len(data)} bytes returned by {spec.signature}: {exc}"
            ) from exc

    def method_for_selector(self, selector: bytes) -> MethodSpec:
        for spec in self._methods.values():
            if spec.selector == selector:
                return spec
        raise DecodingError(f"No function with selector 0x{selector.hex()}")


# ============ Interface sources ============


def load_abi_file(path: Path) -> list[dict[str, Any]]:
    """
    Load an ABI from a JSON file.

    Accepts either a bare ABI array or a compiler artifact holding it
    under ``"abi"``.

    Raises:
        FileNotFoundError: If the file does not exist
        DescriptorError: If the file holds no ABI
    """
    with Path(path).open("r", encoding="utf-8") as f:
        try:
            artifact = json.load(f)
        except json.JSONDecodeError as exc:
            raise DescriptorError(f"Invalid ABI JSON in {path}: {exc}") from exc

    if isinstance(artifact, dict):
        artifact = artifact.get("abi")
    if not isinstance(artifact, list):
        raise DescriptorError(f"No ABI found in {path}")
    return artifact


def fetch_contract_abi(
    contract_address: str,
    api_url: str = DEFAULT_EXPLORER_URL,
    api_key: Optional[str] = None,
    client: Optional[httpx.Client] = None,
) -> str:
    """
    Fetch a verified contract's ABI from a Polygonscan-compatible explorer.

    Args:
        contract_address: 0x-prefixed contract address
        api_url: Explorer API endpoint
        api_key: Optional explorer API key
        client: httpx client to reuse (a short-lived one is created otherwise)

    Returns:
        The ABI as a JSON string

    Raises:
        RemoteError: If the request fails or the explorer reports an error
    """
    params = {"module": "contract", "action": "getabi", "address": contract_address}
    if api_key:
        params["apikey"] = api_key

    try:
        if client is None:
            with httpx.Client(timeout=30) as owned:
                response = owned.get(api_url, params=params)
        else:
            response = client.get(api_url, params=params)
        response.raise_for_status()
        data = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        raise RemoteError(f"Failed to fetch ABI for {contract_address}: {exc}") from exc

    if data.get("status") != "1":
        raise RemoteError(
            f"Error fetching contract ABI: {data.get('message')} ({data.get('result')})"
        )
    return data["result"]


@lru_cache(maxsize=16)
def load_descriptor(
    contract_address: str,
    abi_path: Optional[str] = None,
    api_url: str = DEFAULT_EXPLORER_URL,
    api_key: Optional[str] = None,
) -> ContractDescriptor:
    """Build (and cache) the descriptor for a contract.

    Reads ``abi_path`` when given, otherwise asks the explorer.
    """
    if abi_path:
        logger.info("Loading ABI for %s from %s", contract_address, abi_path)
        return ContractDescriptor.from_abi(contract_address, load_abi_file(Path(abi_path)))

    logger.info("Fetching ABI for %s from %s", contract_address, api_url)
    abi_json = fetch_contract_abi(contract_address, api_url=api_url, api_key=api_key)
    return ContractDescriptor.from_json(contract_address, abi_json)
