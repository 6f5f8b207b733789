"""Gas tank account capability backed by web3.py and eth-account.

A gas tank is a counterfactual smart account owned by an EOA. Its address
comes from the account factory, its nonce from the ERC-4337 EntryPoint, and
sponsorship quotes are signed by the owning key.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Sequence

import aiohttp
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3

from ..core.config import Config
from ..core.errors import ConfigurationError, SponsorshipError, UpstreamError, ValidationFailed
from ..core.utils import is_hash
from ..models.tank import GasTankConfiguration

logger = logging.getLogger(__name__)

ERC20_ABI = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "decimals",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint8"}],
    },
    {
        "name": "transfer",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "amount", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
]

ACCOUNT_FACTORY_ABI = [
    {
        "name": "computeAccountAddress",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "index", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "name": "createAccount",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "owner", "type": "address"},
            {"name": "index", "type": "uint256"},
        ],
        "outputs": [{"name": "", "type": "address"}],
    },
]

ENTRY_POINT_ABI = [
    {
        "name": "getNonce",
        "type": "function",
        "stateMutability": "view",
        "inputs": [
            {"name": "sender", "type": "address"},
            {"name": "key", "type": "uint192"},
        ],
        "outputs": [{"name": "nonce", "type": "uint256"}],
    },
]


@dataclass(frozen=True)
class TokenBalance:
    balance: int
    decimals: int


@dataclass(frozen=True)
class AccountNonce:
    nonce: int
    nonce_key: int


@dataclass(frozen=True)
class DeployResult:
    """``hash`` is None when the account was already deployed."""

    hash: Optional[str] = None


class ChainClient(Protocol):
    """Generic chain reads used by the orchestrator and receipt handler."""

    async def read_contract(
        self, address: str, abi: list, function_name: str, args: Sequence[Any] = ()
    ) -> Any: ...

    async def get_transaction_receipt(self, tx_hash: str) -> Dict[str, Any]: ...


class GasTankAccount(Protocol):
    """Capability bound to one gas tank."""

    public_client: ChainClient

    async def get_address(self) -> str: ...

    async def is_deployed(self) -> bool: ...

    async def deploy(self, token_address: str, amount: int) -> DeployResult: ...

    async def get_balance(self, token_address: str) -> TokenBalance: ...

    async def get_nonce(self) -> AccountNonce: ...

    async def sign_sponsorship(self, quote: Dict[str, Any]) -> Dict[str, Any]: ...


async def _upstream(action: str, awaitable):
    """Await a chain call, wrapping library failures in ``UpstreamError``."""
    try:
        return await awaitable
    except SponsorshipError:
        raise
    except Exception as exc:
        message = str(exc) or f"{action} failed"
        raise UpstreamError(message) from exc


class Web3ChainClient:
    """Thin async wrapper over ``AsyncWeb3``."""

    def __init__(self, w3: AsyncWeb3, receipt_timeout: float = 120.0) -> None:
        self.w3 = w3
        self.receipt_timeout = receipt_timeout

    def contract(self, address: str, abi: list):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    async def chain_id(self) -> int:
        return await _upstream("Chain id query", self.w3.eth.chain_id)

    async def get_code(self, address: str) -> bytes:
        return await _upstream(
            "Code query", self.w3.eth.get_code(Web3.to_checksum_address(address))
        )

    async def read_contract(
        self, address: str, abi: list, function_name: str, args: Sequence[Any] = ()
    ) -> Any:
        function = getattr(self.contract(address, abi).functions, function_name)
        return await _upstream(f"{function_name} call", function(*args).call())

    async def get_transaction_receipt(self, tx_hash: str) -> Dict[str, Any]:
        receipt = await _upstream(
            "Receipt query", self.w3.eth.get_transaction_receipt(tx_hash)
        )
        return dict(receipt)

    async def transact(self, owner: LocalAccount, contract_function) -> str:
        """Sign and send a contract call from ``owner``, waiting for success."""
        nonce = await _upstream(
            "Nonce query", self.w3.eth.get_transaction_count(owner.address, "pending")
        )
        tx = await _upstream(
            "Transaction build",
            contract_function.build_transaction({"from": owner.address, "nonce": nonce}),
        )
        signed = owner.sign_transaction(tx)
        tx_hash = await _upstream(
            "Transaction broadcast", self.w3.eth.send_raw_transaction(signed.raw_transaction)
        )
        receipt = await _upstream(
            "Transaction confirmation",
            self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout),
        )
        tx_hex = "0x" + bytes(tx_hash).hex()
        if receipt.get("status") != 1:
            raise UpstreamError(f"Transaction {tx_hex} reverted")
        return tx_hex


class Web3GasTankAccount:
    """Gas tank account implemented over an account factory and EntryPoint."""

    def __init__(
        self,
        client: Web3ChainClient,
        owner: LocalAccount,
        factory_address: str,
        entry_point_address: str,
        index: int = 0,
        nonce_key: int = 0,
    ) -> None:
        self.public_client = client
        self._owner = owner
        self._factory_address = factory_address
        self._entry_point_address = entry_point_address
        self._index = index
        self._nonce_key = nonce_key
        self._address: Optional[str] = None

    async def get_address(self) -> str:
        if self._address is None:
            address = await self.public_client.read_contract(
                self._factory_address,
                ACCOUNT_FACTORY_ABI,
                "computeAccountAddress",
                [self._owner.address, self._index],
            )
            self._address = Web3.to_checksum_address(address)
        return self._address

    async def is_deployed(self) -> bool:
        code = await self.public_client.get_code(await self.get_address())
        return len(code) > 0

    async def deploy(self, token_address: str, amount: int) -> DeployResult:
        """Create the account and transfer ``amount`` of the token into it.

        Returns the creation hash, or no hash when the account already had
        code. An existing account holding none of the token gets the deposit,
        so a deployment interrupted between the two transactions is finished
        on the next run.
        """
        address = await self.get_address()
        deploy_hash = None
        if not await self.is_deployed():
            deploy_hash = await self._create_account(address)

        if deploy_hash is None:
            balance = await self.public_client.read_contract(
                token_address, ERC20_ABI, "balanceOf", [address]
            )
            if int(balance) > 0:
                return DeployResult(hash=None)
            logger.warning("Gas tank %s has code but no deposit, sending it", address)

        token = self.public_client.contract(token_address, ERC20_ABI)
        transfer_hash = await self.public_client.transact(
            self._owner, token.functions.transfer(address, amount)
        )
        logger.info("Deposited %s base units into %s (tx %s)", amount, address, transfer_hash)
        return DeployResult(hash=deploy_hash)

    async def _create_account(self, address: str) -> Optional[str]:
        factory = self.public_client.contract(self._factory_address, ACCOUNT_FACTORY_ABI)
        try:
            return await self.public_client.transact(
                self._owner, factory.functions.createAccount(self._owner.address, self._index)
            )
        except UpstreamError:
            # Lost the race against another deployer.
            if await self.is_deployed():
                logger.info("Gas tank %s was created concurrently", address)
                return None
            raise

    async def get_balance(self, token_address: str) -> TokenBalance:
        address = await self.get_address()
        balance, decimals = await asyncio.gather(
            self.public_client.read_contract(token_address, ERC20_ABI, "balanceOf", [address]),
            self.public_client.read_contract(token_address, ERC20_ABI, "decimals"),
        )
        return TokenBalance(balance=int(balance), decimals=int(decimals))

    async def get_nonce(self) -> AccountNonce:
        nonce = await self.public_client.read_contract(
            self._entry_point_address,
            ENTRY_POINT_ABI,
            "getNonce",
            [await self.get_address(), self._nonce_key],
        )
        nonce = int(nonce)
        return AccountNonce(nonce=nonce, nonce_key=nonce >> 64)

    async def sign_sponsorship(self, quote: Dict[str, Any]) -> Dict[str, Any]:
        """Sign the quote hash with the owner key and attach the sponsorship."""
        quote_hash = quote.get("hash")
        if not is_hash(quote_hash):
            raise ValidationFailed("Invalid sponsorship quote hash")

        signed = self._owner.sign_message(encode_defunct(hexstr=quote_hash))
        payment_info = dict(quote.get("paymentInfo") or {})
        payment_info["sponsor"] = await self.get_address()
        payment_info["sponsorshipSignature"] = "0x" + bytes(signed.signature).hex()
        return {**quote, "paymentInfo": payment_info}


async def create_gas_tank_account(
    tank_config: GasTankConfiguration, config: Config
) -> Web3GasTankAccount:
    """Build a gas tank account for ``tank_config`` and check its chain id."""
    if not config.account_factory_address:
        raise ConfigurationError("ACCOUNT_FACTORY_ADDRESS is not configured")

    try:
        owner = Account.from_key(tank_config.private_key)
    except (ValueError, TypeError) as exc:
        raise ConfigurationError(
            f"Invalid private key for chain {tank_config.chain_id}"
        ) from exc

    provider = AsyncHTTPProvider(
        tank_config.rpc_url,
        request_kwargs={"timeout": aiohttp.ClientTimeout(total=config.rpc_timeout_seconds)},
    )
    client = Web3ChainClient(AsyncWeb3(provider))

    reported = await client.chain_id()
    if reported != tank_config.chain_id:
        raise ConfigurationError(
            f"RPC for chain {tank_config.chain_id} reports chain id {reported}"
        )

    return Web3GasTankAccount(
        client,
        owner,
        factory_address=config.account_factory_address,
        entry_point_address=config.entry_point_address,
    )
