"""Environment variable schemas and the .env parsing rules they share."""

from __future__ import annotations

import json
import re
import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

SECRET_MASK = "••••••••"

_ENV_LINE = re.compile(r"^([A-Z_][A-Z0-9_]*)=(.*)$", re.IGNORECASE)


class EnvValueType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    JSON = "json"


class EnvEnvironment(str, Enum):
    PRODUCTION = "production"
    STAGING = "staging"
    DEVELOPMENT = "development"
    ALL = "all"


def normalize_env_key(key: str) -> str:
    """``api-url`` -> ``API_URL``: upper-case, anything outside [A-Z0-9_] becomes ``_``."""
    return re.sub(r"[^A-Z0-9_]", "_", key.strip().upper())


def value_matches_type(value_type: EnvValueType | str, value: str) -> bool:
    value_type = EnvValueType(value_type)
    if value_type is EnvValueType.NUMBER:
        try:
            float(value)
        except ValueError:
            return False
    elif value_type is EnvValueType.BOOLEAN:
        return value.lower() in ("true", "false")
    elif value_type is EnvValueType.JSON:
        try:
            json.loads(value)
        except ValueError:
            return False
    return True


def parse_env_content(content: str) -> list[dict[str, str]]:
    """Parse ``KEY=value`` lines. Blank lines, comments and malformed lines are skipped;
    one pair of matching surrounding quotes is stripped from the value."""
    variables = []
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        match = _ENV_LINE.match(line)
        if match is None:
            continue
        value = match.group(2)
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = value[1:-1]
        variables.append({"key": match.group(1).upper(), "value": value})
    return variables


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class EnvVarCreateRequest(BaseModel):
    key: str = Field(min_length=1, max_length=128)
    value: str = Field(min_length=1)
    value_type: EnvValueType = EnvValueType.STRING
    environment: EnvEnvironment
    channel: Optional[str] = Field(default=None, max_length=100)
    is_secret: bool = False
    description: Optional[str] = None

    @field_validator("key")
    @classmethod
    def _normalize_key(cls, v: str) -> str:
        return normalize_env_key(v)

    @model_validator(mode="after")
    def _value_fits_type(self) -> "EnvVarCreateRequest":
        if not value_matches_type(self.value_type, self.value):
            raise ValueError(f"value is not a valid {self.value_type.value}")
        return self


class EnvVarUpdateRequest(BaseModel):
    """Partial update; the merged row is re-checked against its value type."""
    key: Optional[str] = Field(default=None, min_length=1, max_length=128)
    value: Optional[str] = Field(default=None, min_length=1)
    value_type: Optional[EnvValueType] = None
    environment: Optional[EnvEnvironment] = None
    channel: Optional[str] = Field(default=None, max_length=100)
    is_secret: Optional[bool] = None
    description: Optional[str] = None

    @field_validator("key")
    @classmethod
    def _normalize_key(cls, v: Optional[str]) -> Optional[str]:
        return normalize_env_key(v) if v is not None else v


class EnvVarBulkItem(BaseModel):
    key: str = Field(min_length=1, max_length=128)
    value: str
    is_secret: bool = False

    @field_validator("key")
    @classmethod
    def _normalize_key(cls, v: str) -> str:
        return normalize_env_key(v)


class EnvVarBulkRequest(BaseModel):
    """Import string variables into one environment; existing keys are overwritten."""
    environment: EnvEnvironment
    variables: list[EnvVarBulkItem] = Field(min_length=1)


class EnvParseRequest(BaseModel):
    content: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class EnvVarResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    app_id: uuid.UUID
    key: str
    value: str
    value_type: EnvValueType
    environment: EnvEnvironment
    channel: Optional[str] = None
    is_secret: bool
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("channel", mode="before")
    @classmethod
    def _blank_channel(cls, v: Optional[str]) -> Optional[str]:
        return v or None


class EnvVarListResponse(BaseModel):
    data: list[EnvVarResponse]


class EnvVarBulkResponse(BaseModel):
    created: int
    variables: list[EnvVarResponse]


class ParsedEnvVar(BaseModel):
    key: str
    value: str


class EnvParseResponse(BaseModel):
    variables: list[ParsedEnvVar]
    count: int


class SecretRevealResponse(BaseModel):
    id: uuid.UUID
    key: str
    value: str
