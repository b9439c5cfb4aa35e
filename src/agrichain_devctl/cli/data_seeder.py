"""Seeding of demo supply-chain data through the deployed contract."""

import asyncio
import json
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import Web3Exception

from ..shared.configuration import InvalidConfigurationError
from ..shared.exceptions import CallRejectedError, DeploymentArtifactMissingError
from .logging import get_logger


@dataclass(frozen=True)
class SeedRecord:
    """One harvested item to create on chain."""

    name: str
    origin: str
    price: int
    quality: str

    def as_call_args(self) -> tuple:
        return (self.name, self.origin, self.price, self.quality)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SeedRecord":
        try:
            return cls(
                name=str(data["name"]),
                origin=str(data["origin"]),
                price=int(data["price"]),
                quality=str(data["quality"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidConfigurationError(f"Invalid seed record {data!r}: {e}")


DEFAULT_SEED_RECORDS = (
    SeedRecord("Mango", "Mumbai", 1000, "Premium"),
    SeedRecord("Rice", "Punjab", 500, "Organic"),
    SeedRecord("Wheat", "Haryana", 300, "Standard"),
)


def load_seed_records(path: Path | str | None) -> list[SeedRecord]:
    """Load seed records from a JSON list, or return the default records."""
    if path is None:
        return list(DEFAULT_SEED_RECORDS)

    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise InvalidConfigurationError(f"Cannot load seed data from {path}: {e}")

    if not isinstance(data, list):
        raise InvalidConfigurationError(f"Seed data in {path} must be a JSON list")
    return [SeedRecord.from_dict(item) for item in data]


@dataclass
class DeploymentArtifact:
    """Compiled contract description written by the deployment tool."""

    contract_name: str
    abi: list[dict[str, Any]]
    networks: dict[str, dict[str, Any]]
    path: Path | None = None

    @classmethod
    def load(cls, path: Path | str) -> "DeploymentArtifact":
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise DeploymentArtifactMissingError(
                f"Cannot read deployment artifact {path}: {e}"
            ) from e

        return cls(
            contract_name=data.get("contractName", path.stem),
            abi=data.get("abi") or [],
            networks=data.get("networks") or {},
            path=path,
        )

    def address_for(self, network_id: str) -> str:
        """Return the address deployed on ``network_id``."""
        deployed = self.networks.get(str(network_id)) or {}
        address = deployed.get("address")
        if not address:
            raise DeploymentArtifactMissingError(
                f"{self.contract_name} has no deployment recorded for network {network_id}",
                network_id=str(network_id),
            )
        return address


class ContractClient(ABC):
    """State-mutating calls the seeder makes against the deployed contract."""

    @abstractmethod
    async def register_actor(self, actor: str) -> Any:
        """Register ``actor`` and return once the call is acknowledged."""

    @abstractmethod
    async def submit_record(self, record: SeedRecord) -> Any:
        """Create ``record`` and return once the call is acknowledged."""

    async def close(self) -> None:
        """Release network resources."""


class Web3ContractClient(ContractClient):
    """``ContractClient`` that sends transactions from an unlocked account."""

    def __init__(
        self,
        w3: AsyncWeb3,
        contract: Any,
        sender: str,
        gas: int = 3000000,
        register_method: str = "addFarmer",
        record_method: str = "harvestItem",
        receipt_timeout: float = 120,
    ):
        self.w3 = w3
        self.contract = contract
        self.sender = AsyncWeb3.to_checksum_address(sender)
        self.gas = gas
        self.register_method = register_method
        self.record_method = record_method
        self.receipt_timeout = receipt_timeout
        self.logger = get_logger("cli.contract_client")

    @classmethod
    def connect(
        cls, rpc_url: str, abi: list[dict[str, Any]], address: str, **kwargs: Any
    ) -> "Web3ContractClient":
        w3 = AsyncWeb3(AsyncHTTPProvider(rpc_url))
        contract = w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(address), abi=abi
        )
        return cls(w3, contract, **kwargs)

    async def register_actor(self, actor: str) -> Any:
        return await self._transact(
            self.register_method, AsyncWeb3.to_checksum_address(actor)
        )

    async def submit_record(self, record: SeedRecord) -> Any:
        return await self._transact(self.record_method, *record.as_call_args())

    async def _transact(self, method: str, *args: Any) -> Any:
        try:
            function = getattr(self.contract.functions, method)
            tx_hash = await function(*args).transact(
                {"from": self.sender, "gas": self.gas}
            )
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except (
            Web3Exception,
            aiohttp.ClientError,
            asyncio.TimeoutError,
            ValueError,
        ) as e:
            raise CallRejectedError(method, str(e) or type(e).__name__, args) from e

        if receipt["status"] != 1:
            raise CallRejectedError(method, "transaction reverted", args)

        self.logger.debug(f"{method} mined in block {receipt.get('blockNumber')}")
        return receipt

    async def close(self) -> None:
        await self.w3.provider.disconnect()


ClientFactory = Callable[[list[dict[str, Any]], str], ContractClient]


@dataclass
class SeedReport:
    """Calls the seeder submitted, in order."""

    contract_address: str
    actor: str
    records: list[SeedRecord] = field(default_factory=list)


class DataSeeder:
    """Registers the actor and creates each record, one acknowledged call at a time."""

    def __init__(self, client_factory: ClientFactory):
        self.client_factory = client_factory
        self.logger = get_logger("cli.data_seeder")

    async def seed(
        self,
        artifact: DeploymentArtifact,
        network_id: str,
        actor: str,
        records: list[SeedRecord],
    ) -> SeedReport:
        address = artifact.address_for(network_id)
        client = self.client_factory(artifact.abi, address)
        report = SeedReport(contract_address=address, actor=actor)

        try:
            self.logger.info(f"Registering actor {actor}")
            await client.register_actor(actor)

            # Submissions stay sequential: on-chain ids follow call order
            for index, record in enumerate(records, start=1):
                self.logger.info(
                    f"Creating item {index}: {record.name} from {record.origin}"
                )
                await client.submit_record(record)
                report.records.append(record)
        finally:
            await self._close_client(client)

        return report

    async def _close_client(self, client: ContractClient) -> None:
        # A close failure must not replace the error that ended seeding
        try:
            await client.close()
        except Exception as e:
            self.logger.warning(f"Failed to close contract client: {e}")


__all__ = [
    "SeedRecord",
    "DEFAULT_SEED_RECORDS",
    "load_seed_records",
    "DeploymentArtifact",
    "ContractClient",
    "Web3ContractClient",
    "SeedReport",
    "DataSeeder",
]
