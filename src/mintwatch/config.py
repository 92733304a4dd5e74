from pathlib import Path

from eth_utils import is_address, to_checksum_address
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONTRACT = "0xf8c4B0E8322eBec10580e34667210386007c4398"
DEFAULT_START_BLOCK = 21_065_598

AGGREGATE_KEY = "mintEvents"
LEDGER_KEY = "processedEvents"
CURSOR_KEY = "cursor"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MINTWATCH_", env_file=".env", extra="ignore")

    rpc_url: str = "https://eth.llamarpc.com"
    contract_address: str = DEFAULT_CONTRACT
    start_block: int = DEFAULT_START_BLOCK
    poll_interval_s: float = 15.0
    max_block_range: int | None = None
    rpc_timeout_s: float = 20.0

    data_dir: Path = Path(".")
    journal_path: Path | None = None

    host: str = "0.0.0.0"
    port: int = 3000
    rate_limit_max: int = 5
    rate_limit_window_s: float = 60.0
    rate_limit_message: str = "Too many requests from this IP, please try again after 1 minute."

    log_level: str = "INFO"

    @field_validator("contract_address", mode="after")
    def validate_contract(cls, value: str) -> str:  # noqa: N805
        if not is_address(value):
            raise ValueError(f"{value!r} is not an address")
        return to_checksum_address(value)

    @field_validator("poll_interval_s", "rate_limit_window_s", "rpc_timeout_s", mode="after")
    def validate_positive(cls, value: float) -> float:  # noqa: N805
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("max_block_range", "rate_limit_max", mode="after")
    def validate_positive_int(cls, value: int | None) -> int | None:  # noqa: N805
        if value is not None and value < 1:
            raise ValueError("must be at least 1")
        return value

    @field_validator("start_block", mode="after")
    def validate_start_block(cls, value: int) -> int:  # noqa: N805
        if value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("data_dir", "journal_path", mode="after")
    def expand_paths(cls, path: Path | None) -> Path | None:  # noqa: N805
        return path.expanduser().absolute() if path is not None else None
