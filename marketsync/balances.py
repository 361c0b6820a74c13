from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, Optional, Protocol, Sequence

from web3 import Web3

from marketsync.models import (
    PositionDescriptor,
    ScannedPosition,
    TokenBalance,
    WalletScanResult,
)

logger = logging.getLogger(__name__)

DEFAULT_MIN_BALANCE = 0.0001

SUPPORTED_CHAINS = {
    137: "polygon",
    8453: "base",
}

ERC1155_ABI = [
    {
        "inputs": [
            {"name": "account", "type": "address"},
            {"name": "id", "type": "uint256"},
        ],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"name": "accounts", "type": "address[]"},
            {"name": "ids", "type": "uint256[]"},
        ],
        "name": "balanceOfBatch",
        "outputs": [{"name": "", "type": "uint256[]"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class UnsupportedChainError(ValueError):
    def __init__(self, chain_id: int) -> None:
        super().__init__(f"unsupported chain: {chain_id}")
        self.chain_id = chain_id


class ChainClient(Protocol):
    def balance_of(self, wallet: str, contract: str, token_id: int) -> int: ...

    def balance_of_batch(self, wallet: str, contract: str, token_ids: Sequence[int]) -> list[int]: ...


class Web3ChainClient:
    """Blocking read-only ERC-1155 reads over one JSON-RPC endpoint."""

    def __init__(self, rpc_url: str, timeout_seconds: float = 10.0) -> None:
        self.web3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds}))

    def _contract(self, contract: str):
        return self.web3.eth.contract(address=Web3.to_checksum_address(contract), abi=ERC1155_ABI)

    def balance_of(self, wallet: str, contract: str, token_id: int) -> int:
        return int(
            self._contract(contract)
            .functions.balanceOf(Web3.to_checksum_address(wallet), int(token_id))
            .call()
        )

    def balance_of_batch(self, wallet: str, contract: str, token_ids: Sequence[int]) -> list[int]:
        owner = Web3.to_checksum_address(wallet)
        values = (
            self._contract(contract)
            .functions.balanceOfBatch([owner] * len(token_ids), [int(token_id) for token_id in token_ids])
            .call()
        )
        return [int(value) for value in values]


ClientFactory = Callable[[int, str], ChainClient]


def _position_key(contract: str, token_id: int) -> tuple[str, int]:
    return contract.lower(), int(token_id)


class BalanceScanner:
    """Reads outcome-token balances for a wallet across supported chains."""

    def __init__(
        self,
        rpc_urls: Dict[int, str],
        timeout_seconds: float = 10.0,
        client_factory: Optional[ClientFactory] = None,
    ) -> None:
        self.rpc_urls = dict(rpc_urls)
        self.timeout_seconds = timeout_seconds
        self.client_factory = client_factory or (
            lambda chain_id, rpc_url: Web3ChainClient(rpc_url, self.timeout_seconds)
        )
        self._clients: Dict[int, ChainClient] = {}

    def client_for(self, chain_id: int) -> ChainClient:
        client = self._clients.get(chain_id)
        if client is not None:
            return client
        if chain_id not in SUPPORTED_CHAINS or not self.rpc_urls.get(chain_id):
            raise UnsupportedChainError(chain_id)
        client = self.client_factory(chain_id, self.rpc_urls[chain_id])
        self._clients[chain_id] = client
        return client

    async def read_balance(
        self,
        wallet: str,
        contract: str,
        token_id: int,
        chain_id: int,
        decimals: int = 18,
    ) -> TokenBalance:
        client = self.client_for(chain_id)
        raw = await asyncio.to_thread(client.balance_of, wallet, contract, token_id)
        return _token_balance(contract, token_id, raw, decimals)

    async def read_balances_batch(
        self,
        wallet: str,
        descriptors: Sequence[PositionDescriptor],
        chain_id: int,
    ) -> list[TokenBalance]:
        client = self.client_for(chain_id)
        by_contract: Dict[str, list[PositionDescriptor]] = {}
        for descriptor in descriptors:
            by_contract.setdefault(descriptor.contract_address.lower(), []).append(descriptor)

        groups = await asyncio.gather(
            *(self._read_contract(client, wallet, group) for group in by_contract.values())
        )
        return [balance for group in groups for balance in group]

    async def _read_contract(
        self,
        client: ChainClient,
        wallet: str,
        group: Sequence[PositionDescriptor],
    ) -> list[TokenBalance]:
        contract = group[0].contract_address
        token_ids = [descriptor.token_id for descriptor in group]
        try:
            raw_values = await asyncio.to_thread(client.balance_of_batch, wallet, contract, token_ids)
            if len(raw_values) != len(group):
                raise ValueError(
                    f"balanceOfBatch returned {len(raw_values)} values for {len(group)} ids"
                )
        except Exception as exc:
            logger.warning("Batch balance read failed for %s, reading individually: %s", contract, exc)
            raw_values = [await self._read_single(client, wallet, d) for d in group]
        return [
            _token_balance(descriptor.contract_address, descriptor.token_id, raw, descriptor.decimals)
            for descriptor, raw in zip(group, raw_values)
        ]

    async def _read_single(
        self, client: ChainClient, wallet: str, descriptor: PositionDescriptor
    ) -> int:
        try:
            return await asyncio.to_thread(
                client.balance_of, wallet, descriptor.contract_address, descriptor.token_id
            )
        except Exception as exc:
            logger.warning(
                "Balance read failed for %s/%s: %s",
                descriptor.contract_address,
                descriptor.token_id,
                exc,
            )
            return 0

    async def scan_positions(
        self,
        wallet: str,
        descriptors: Iterable[PositionDescriptor],
        min_balance: float = DEFAULT_MIN_BALANCE,
    ) -> WalletScanResult:
        descriptors = list(descriptors)
        scanned_at = datetime.now(timezone.utc)
        if not descriptors:
            return WalletScanResult(wallet=wallet, positions=[], total_value=0.0, scanned_at=scanned_at)

        by_chain: Dict[int, list[PositionDescriptor]] = {}
        for descriptor in descriptors:
            by_chain.setdefault(descriptor.chain_id, []).append(descriptor)

        chain_ids = list(by_chain)
        results = await asyncio.gather(
            *(self.read_balances_batch(wallet, by_chain[chain_id], chain_id) for chain_id in chain_ids),
            return_exceptions=True,
        )

        positions: list[ScannedPosition] = []
        errors: list[str] = []
        for chain_id, result in zip(chain_ids, results):
            if isinstance(result, BaseException):
                logger.warning("Chain %s scan failed: %s", chain_id, result)
                errors.append(f"chain {chain_id}: {result}")
                continue
            balances = {_position_key(b.contract_address, b.token_id): b for b in result}
            for descriptor in by_chain[chain_id]:
                balance = balances.get(_position_key(descriptor.contract_address, descriptor.token_id))
                if balance is None or balance.balance_formatted < min_balance:
                    continue
                positions.append(_scanned(descriptor, balance))

        total_value = sum(p.current_value for p in positions if p.current_value is not None)
        return WalletScanResult(
            wallet=wallet,
            positions=positions,
            total_value=total_value,
            scanned_at=scanned_at,
            errors=errors,
        )


def _token_balance(contract: str, token_id: int, raw: int, decimals: int) -> TokenBalance:
    raw = int(raw)
    return TokenBalance(
        contract_address=contract,
        token_id=int(token_id),
        balance=raw,
        balance_formatted=raw / (10 ** decimals),
        decimals=decimals,
    )


def _scanned(descriptor: PositionDescriptor, balance: TokenBalance) -> ScannedPosition:
    value = None
    if descriptor.current_price is not None:
        value = balance.balance_formatted * descriptor.current_price
    return ScannedPosition(
        market_id=descriptor.market_id,
        market_slug=descriptor.market_slug,
        venue=descriptor.venue,
        outcome=descriptor.outcome,
        question=descriptor.question,
        contract_address=descriptor.contract_address,
        token_id=descriptor.token_id,
        chain_id=descriptor.chain_id,
        balance=balance.balance,
        balance_formatted=balance.balance_formatted,
        current_price=descriptor.current_price,
        current_value=value,
    )
