"""Storage configuration models.

Each configured storage is one variant of a pydantic discriminated union
keyed on ``type``. Every variant carries the logical ``name`` it is
registered under.

Example YAML:
    storage:
      - type: local
        name: Temp
        root: /tmp/se-temp
      - type: azure
        name: Cloud1
        account_name: devstore
        account_key: ${AZURE_STORAGE_KEY}
        container_name: exchange
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

__all__ = [
    "AzureStorageOptions",
    "LocalStorageOptions",
    "S3StorageOptions",
    "StorageName",
    "StorageOptions",
    "StorageOptionsBase",
    "parse_storage_options",
]


class StorageName(str, Enum):
    """Logical names a storage can be registered under."""

    LOCAL = "Local"
    TEMP = "Temp"
    CLOUD1 = "Cloud1"
    CLOUD2 = "Cloud2"

    @classmethod
    def parse(cls, value: Any) -> Optional["StorageName"]:
        """Return the member matching ``value`` exactly, or None."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


class StorageOptionsBase(BaseModel):
    """Fields shared by every storage configuration variant.

    ``name`` is kept as a plain string so the registry can report every
    unknown name at once instead of failing on the first.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(..., min_length=1, description="Logical storage name")

    @field_validator("name", mode="before")
    @classmethod
    def coerce_name(cls, v: Any) -> Any:
        """Accept StorageName members as well as strings."""
        if isinstance(v, StorageName):
            return v.value
        return v


class LocalStorageOptions(StorageOptionsBase):
    """Local filesystem storage rooted at a directory."""

    type: Literal["local"] = "local"
    root: str = Field(..., min_length=1, description="Root directory")


class AzureStorageOptions(StorageOptionsBase):
    """Azure Blob Storage container."""

    type: Literal["azure"] = "azure"
    account_name: str = Field(..., min_length=1, description="Storage account name")
    account_key: str = Field(..., min_length=1, description="Storage account key")
    container_name: str = Field(..., min_length=1, description="Blob container name")

    @field_validator("container_name")
    @classmethod
    def validate_container_name(cls, v: str) -> str:
        """Azure container names are lowercase letters, digits and hyphens."""
        if not (3 <= len(v) <= 63) or not all(c.islower() or c.isdigit() or c == "-" for c in v):
            raise ValueError(
                "container_name must be 3-63 characters of lowercase letters, digits or '-'"
            )
        return v

    def __repr__(self) -> str:
        return (
            f"AzureStorageOptions(name={self.name!r}, account_name={self.account_name!r}, "
            f"container_name={self.container_name!r})"
        )


class S3StorageOptions(StorageOptionsBase):
    """AWS S3 bucket (optionally scoped to a prefix)."""

    type: Literal["s3"] = "s3"
    bucket: str = Field(..., min_length=1, description="Bucket name")
    prefix: str = Field(default="", description="Key prefix inside the bucket")
    key: Optional[str] = Field(default=None, description="Access key id")
    secret: Optional[str] = Field(default=None, description="Secret access key")
    region: Optional[str] = Field(default=None, description="AWS region")
    endpoint_url: Optional[str] = Field(default=None, description="Custom S3 endpoint")

    def __repr__(self) -> str:
        return f"S3StorageOptions(name={self.name!r}, bucket={self.bucket!r}, prefix={self.prefix!r})"


StorageOptions = Annotated[
    Union[LocalStorageOptions, AzureStorageOptions, S3StorageOptions],
    Field(discriminator="type"),
]

_OPTIONS_ADAPTER: TypeAdapter = TypeAdapter(StorageOptions)


def parse_storage_options(data: Any) -> StorageOptionsBase:
    """Validate one raw mapping into its configuration variant.

    Raises:
        pydantic.ValidationError: If the mapping matches no variant
    """
    if isinstance(data, StorageOptionsBase):
        return data
    return _OPTIONS_ADAPTER.validate_python(data)
