from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_BASE_URL = "https://gemcontent.com/api/v1"


class GenerationStatus(str, Enum):
    pending = "pending"
    generating = "generating"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class StatusCheck(BaseModel):
    """The two fields of a status envelope the poller acts on"""

    success: bool = False
    status: Optional[str] = None
    raw_response: dict

    @classmethod
    def from_payload(cls, payload: dict) -> "StatusCheck":
        data = payload.get("data")
        status = data.get("status") if isinstance(data, dict) else None
        # Non-string statuses are unknown, hence non-terminal
        if not isinstance(status, str):
            status = None
        return cls(
            success=bool(payload.get("success")),
            status=status,
            raw_response=payload,
        )

    @property
    def is_completed(self) -> bool:
        return self.success and self.status == GenerationStatus.completed.value

    @property
    def is_failed(self) -> bool:
        return self.success and self.status == GenerationStatus.failed.value


class PollConfig(BaseModel):
    max_attempts: int = Field(default=60, ge=1)
    delay: float = Field(default=5.0, ge=0)  # seconds
    pending_on_unsuccessful: bool = True


class JobKind(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    failed_message: str
    timeout_message: str
    default_config: PollConfig


SINGLE_GENERATION = JobKind(
    name="generation",
    failed_message="Generation failed",
    timeout_message="Generation timeout",
    default_config=PollConfig(max_attempts=60, delay=5.0),
)

BULK_GENERATION = JobKind(
    name="bulk generation",
    failed_message="Bulk generation failed",
    timeout_message="Bulk generation timeout",
    default_config=PollConfig(max_attempts=120, delay=10.0),
)


class ClientConfig(BaseSettings):
    """Client settings; fields not passed explicitly are read from CONTENTGEM_* variables"""

    model_config = SettingsConfigDict(env_prefix="CONTENTGEM_", frozen=True)

    api_key: str = Field(min_length=1)
    base_url: str = DEFAULT_BASE_URL
    timeout: float = Field(default=30.0, gt=0)  # seconds

    @field_validator("base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @classmethod
    def from_env(cls, **overrides: Any) -> "ClientConfig":
        """Build a config from CONTENTGEM_* environment variables, keyword overrides win"""
        return cls(**overrides)
