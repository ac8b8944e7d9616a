"""
Configuration — validated settings for key derivation, vault and scanner.

Settings are read from environment variables:
    NINJA_RPC_URL             = <JSON-RPC endpoint of the ledger node>
    NINJA_CHAIN_ID            = <integer chain id>
    NINJA_CONTRACT_ADDRESS    = <0x-prefixed payment contract address>
    NINJA_CIPHER_BACKEND      = aesgcm | chacha20
    NINJA_ARGON2_MEMORY_COST  = <KiB>
    NINJA_ARGON2_TIME_COST    = <passes>
    NINJA_ARGON2_PARALLELISM  = <lanes>
    NINJA_SCAN_BLOCK_RANGE    = <blocks scanned back from the chain head>
    NINJA_SCAN_CONCURRENCY    = <in-flight ledger lookups>

Security Note:
    No secret ever lives in configuration. Passwords and signatures are
    supplied per call and never persisted.
"""
import os
import re
import logging

from pydantic import BaseModel, Field, field_validator, model_validator

logger = logging.getLogger("ninja.conf")

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")

# Base Sepolia
DEFAULT_CHAIN_ID = 84532
DEFAULT_RPC_URL = "https://sepolia.base.org"
DEFAULT_CONTRACT_ADDRESS = "0x3c2d3963500945e6596f7ebead989bd927597251"


class Argon2Config(BaseModel):
    """Argon2id cost parameters.

    Defaults target roughly one to two seconds per hash on a modern machine.
    """

    memory_cost: int = Field(default=65536, ge=8)  # KiB, 64 MiB
    time_cost: int = Field(default=3, ge=1)
    parallelism: int = Field(default=4, ge=1, le=64)
    hash_length: int = Field(default=32, ge=16, le=64)

    @model_validator(mode="after")
    def validate_memory(self) -> "Argon2Config":
        """Argon2 needs at least 8 KiB of memory per lane."""
        if self.memory_cost < 8 * self.parallelism:
            raise ValueError(
                f"memory_cost {self.memory_cost} KiB is below the minimum "
                f"of 8 KiB per lane ({8 * self.parallelism} KiB)"
            )
        return self


class VaultConfig(BaseModel):
    """Key vault settings."""

    cipher_backend: str = Field(default="aesgcm")
    salt_length: int = Field(default=16, ge=16, le=64)

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in ("aesgcm", "chacha20"):
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v


class ScannerConfig(BaseModel):
    """Payment discovery settings."""

    block_range: int = Field(default=99_000, ge=1)
    max_concurrency: int = Field(default=8, ge=1, le=256)
    token_decimals: int = Field(default=6, ge=0, le=36)


class Settings(BaseModel):
    """Top-level settings."""

    rpc_url: str = Field(default=DEFAULT_RPC_URL)
    chain_id: int = Field(default=DEFAULT_CHAIN_ID, ge=1)
    contract_address: str = Field(default=DEFAULT_CONTRACT_ADDRESS)
    argon2: Argon2Config = Field(default_factory=Argon2Config)
    vault: VaultConfig = Field(default_factory=VaultConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)

    @field_validator("contract_address")
    @classmethod
    def validate_contract_address(cls, v: str) -> str:
        """Ensure the contract address is a 20-byte hex address."""
        if not _ADDRESS_PATTERN.match(v):
            raise ValueError(f"Invalid contract address: {v}")
        return v.lower()

    @classmethod
    def from_env(cls) -> "Settings":
        """Create Settings by loading values from environment.

        Returns:
            Populated Settings instance.
        """
        env = os.environ
        argon2 = Argon2Config(
            memory_cost=int(env.get("NINJA_ARGON2_MEMORY_COST", 65536)),
            time_cost=int(env.get("NINJA_ARGON2_TIME_COST", 3)),
            parallelism=int(env.get("NINJA_ARGON2_PARALLELISM", 4)),
        )
        vault = VaultConfig(
            cipher_backend=env.get("NINJA_CIPHER_BACKEND", "aesgcm"),
        )
        scanner = ScannerConfig(
            block_range=int(env.get("NINJA_SCAN_BLOCK_RANGE", 99_000)),
            max_concurrency=int(env.get("NINJA_SCAN_CONCURRENCY", 8)),
        )
        settings = cls(
            rpc_url=env.get("NINJA_RPC_URL", DEFAULT_RPC_URL),
            chain_id=int(env.get("NINJA_CHAIN_ID", DEFAULT_CHAIN_ID)),
            contract_address=env.get(
                "NINJA_CONTRACT_ADDRESS", DEFAULT_CONTRACT_ADDRESS
            ),
            argon2=argon2,
            vault=vault,
            scanner=scanner,
        )
        logger.debug(
            "Loaded settings: chain_id=%s contract=%s cipher=%s",
            settings.chain_id, settings.contract_address,
            settings.vault.cipher_backend,
        )
        return settings
