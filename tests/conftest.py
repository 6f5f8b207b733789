"""
Pytest configuration and fixtures for the sponsorship service tests.
"""
from typing import Any, Dict, List, Optional

import pytest

from sponsorship_broker.core import Config, UpstreamError
from sponsorship_broker.core.config import ENTRY_POINT_V07_ADDRESS
from sponsorship_broker.models import ChainDescriptor, GasTankConfiguration
from sponsorship_broker.services import AccountNonce, DeployResult, TokenBalance

# Well-known development key (first Hardhat/Anvil account).
OWNER_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
OWNER_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

TANK_ADDRESS = "0x" + "1a" * 20
OTHER_TANK_ADDRESS = "0x" + "3c" * 20
TOKEN_ADDRESS = "0x" + "2b" * 20
OTHER_TOKEN_ADDRESS = "0x" + "4d" * 20
DEPLOY_HASH = "0x" + "ab" * 32

BASE_SEPOLIA = 84532
SEPOLIA = 11155111

DEPOSIT = 5_000_000


class FakeChainClient:
    """Chain reads served from memory."""

    def __init__(self, owner_balance: int = 0, receipts: Optional[Dict[str, dict]] = None):
        self.owner_balance = owner_balance
        self.receipts = receipts or {}
        self.reads: List[tuple] = []

    async def read_contract(self, address, abi, function_name, args=()):
        self.reads.append((address, function_name, tuple(args)))
        if function_name == "balanceOf":
            return self.owner_balance
        if function_name == "decimals":
            return 6
        raise AssertionError(f"Unexpected contract read {function_name}")

    async def get_transaction_receipt(self, tx_hash: str) -> Dict[str, Any]:
        if tx_hash not in self.receipts:
            raise UpstreamError(f"Transaction with hash: '{tx_hash}' not found.")
        return self.receipts[tx_hash]


class FakeGasTankAccount:
    """In-memory stand-in for a gas tank account."""

    def __init__(
        self,
        address: str = TANK_ADDRESS,
        client: Optional[FakeChainClient] = None,
        deployed: bool = False,
        deploy_hash: Optional[str] = DEPLOY_HASH,
        tank_balance: int = 0,
        decimals: int = 6,
        nonce: int = 0,
        nonce_key: int = 0,
    ):
        self.address = address
        self.public_client = client or FakeChainClient()
        self.deployed = deployed
        self.deploy_hash = deploy_hash
        self.tank_balance = tank_balance
        self.decimals = decimals
        self.nonce = nonce
        self.nonce_key = nonce_key
        self.deploy_calls: List[tuple] = []
        self.sign_calls: List[dict] = []
        self.balance_error: Optional[Exception] = None

    async def get_address(self) -> str:
        return self.address

    async def is_deployed(self) -> bool:
        return self.deployed

    async def deploy(self, token_address: str, amount: int) -> DeployResult:
        self.deploy_calls.append((token_address, amount))
        deploy_hash = None if self.deployed else self.deploy_hash
        self.deployed = True
        if deploy_hash is not None or self.tank_balance == 0:
            self.tank_balance += amount
        return DeployResult(hash=deploy_hash)

    async def get_balance(self, token_address: str) -> TokenBalance:
        if self.balance_error is not None:
            raise self.balance_error
        return TokenBalance(balance=self.tank_balance, decimals=self.decimals)

    async def get_nonce(self) -> AccountNonce:
        return AccountNonce(nonce=self.nonce, nonce_key=self.nonce_key)

    async def sign_sponsorship(self, quote: Dict[str, Any]) -> Dict[str, Any]:
        self.sign_calls.append(quote)
        payment_info = dict(quote["paymentInfo"], sponsorshipSignature="0x" + "ee" * 65)
        return {**quote, "paymentInfo": payment_info}


class FakeAccountFactory:
    """Account factory returning fakes; one tank address per chain."""

    def __init__(
        self,
        owner_balance: int = DEPOSIT * 2,
        deployed: bool = False,
        addresses: Optional[Dict[int, str]] = None,
        failing_chains: tuple = (),
        tank_balance: int = 0,
    ):
        self.owner_balance = owner_balance
        self.deployed = deployed
        self.tank_balance = tank_balance
        self.addresses = addresses or {}
        self.failing_chains = failing_chains
        self.created: List[FakeGasTankAccount] = []

    async def __call__(self, tank_config: GasTankConfiguration) -> FakeGasTankAccount:
        if tank_config.chain_id in self.failing_chains:
            raise UpstreamError("RPC endpoint unreachable")
        account = FakeGasTankAccount(
            address=self.addresses.get(tank_config.chain_id, TANK_ADDRESS),
            client=FakeChainClient(owner_balance=self.owner_balance),
            deployed=self.deployed,
            tank_balance=self.tank_balance,
        )
        self.created.append(account)
        return account


def make_tank_config(
    chain_id: int = BASE_SEPOLIA,
    token_address: str = TOKEN_ADDRESS,
    amount: int = DEPOSIT,
) -> GasTankConfiguration:
    return GasTankConfiguration(
        token_address=token_address,
        chain=ChainDescriptor(chain_id=chain_id, name=f"chain-{chain_id}"),
        amount_to_deposit=amount,
        rpc_url=f"http://localhost:8545/{chain_id}",
        private_key=OWNER_PRIVATE_KEY,
    )


@pytest.fixture
def config(tmp_path) -> Config:
    """Test configuration pointing at a missing tank file."""
    return Config(
        host="127.0.0.1",
        port=3004,
        api_prefix="/v1",
        log_level="DEBUG",
        gas_tanks_file=str(tmp_path / "gas_tanks.json"),
        default_private_key=OWNER_PRIVATE_KEY,
        account_factory_address="0x" + "5e" * 20,
        entry_point_address=ENTRY_POINT_V07_ADDRESS,
        scan_link_template="https://meescan.biconomy.io/details/{hash}",
        rpc_timeout_seconds=5.0,
    )


@pytest.fixture
def account_factory() -> FakeAccountFactory:
    return FakeAccountFactory()
