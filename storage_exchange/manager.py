"""Storage registry: builds and owns one backend per logical storage name.

Usage:
    from storage_exchange import StorageManager, StorageName

    async with StorageManager.from_config("storage.yaml") as manager:
        temp = manager.lookup(StorageName.TEMP)
        await temp.write_text("/23skidoo.txt", "23 skidoo!")
"""

from __future__ import annotations

import asyncio
import logging
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Tuple,
    Type,
    Union,
)

from pydantic import ValidationError

from storage_exchange.config import (
    AzureStorageOptions,
    LocalStorageOptions,
    S3StorageOptions,
    StorageName,
    StorageOptionsBase,
    parse_storage_options,
)
from storage_exchange.errors import (
    ConfigurationError,
    InvalidOperationError,
    NotRegisteredError,
    UnsupportedConfigurationError,
)
from storage_exchange.facade import StorageFacade
from storage_exchange.storage import (
    AzureBlobStorage,
    LocalStorage,
    S3Storage,
    StorageBackend,
)

logger = logging.getLogger(__name__)

__all__ = [
    "BACKEND_FACTORIES",
    "ReleaseFailure",
    "StorageManager",
    "list_backend_factories",
    "register_backend_factory",
]

BackendFactory = Callable[[Any], StorageBackend]

# Variant class -> factory that builds its backend
BACKEND_FACTORIES: Dict[Type[StorageOptionsBase], BackendFactory] = {}


def register_backend_factory(
    options_type: Type[StorageOptionsBase],
) -> Callable[[BackendFactory], BackendFactory]:
    """Decorator to register the backend factory for a configuration variant.

    Usage:
        @register_backend_factory(MyStorageOptions)
        def my_factory(options: MyStorageOptions) -> StorageBackend:
            return MyBackend(options.endpoint)
    """

    def decorator(factory: BackendFactory) -> BackendFactory:
        BACKEND_FACTORIES[options_type] = factory
        return factory

    return decorator


def list_backend_factories() -> List[str]:
    """Return the names of all configuration variants with a factory."""
    return sorted(cls.__name__ for cls in BACKEND_FACTORIES)


def _factory_for(options: StorageOptionsBase) -> Optional[BackendFactory]:
    for cls in type(options).__mro__:
        factory = BACKEND_FACTORIES.get(cls)
        if factory is not None:
            return factory
    return None


@register_backend_factory(LocalStorageOptions)
def _local_factory(options: LocalStorageOptions) -> StorageBackend:
    return LocalStorage(options.root)


@register_backend_factory(AzureStorageOptions)
def _azure_factory(options: AzureStorageOptions) -> StorageBackend:
    return AzureBlobStorage(options.account_name, options.account_key, options.container_name)


@register_backend_factory(S3StorageOptions)
def _s3_factory(options: S3StorageOptions) -> StorageBackend:
    return S3Storage(
        options.bucket,
        key=options.key,
        secret=options.secret,
        region=options.region,
        endpoint_url=options.endpoint_url,
        prefix=options.prefix,
    )


@dataclass(frozen=True)
class ReleaseFailure:
    """A backend that raised while being released."""

    name: StorageName
    error: BaseException

    def __str__(self) -> str:
        return f"{self.name.value}: {type(self.error).__name__}: {self.error}"


OptionsInput = Union[StorageOptionsBase, Mapping[str, Any]]


class StorageManager:
    """Registry mapping logical storage names to backends.

    The whole configuration is validated before any backend is built, so
    construction either yields a complete registry or raises. The manager
    owns every backend it builds and releases them in ``release`` (or on
    leaving an ``async with`` block); callers only ever see facades.

    Example:
        >>> manager = StorageManager([
        ...     LocalStorageOptions(name="Temp", root="/tmp/se-temp"),
        ...     LocalStorageOptions(name="Local", root="/tmp/se-local"),
        ... ])
        >>> manager.names
        [<StorageName.TEMP: 'Temp'>, <StorageName.LOCAL: 'Local'>]
    """

    def __init__(self, options: Optional[Iterable[OptionsInput]]) -> None:
        self._backends: Dict[StorageName, StorageBackend] = {}
        # Stays True until construction succeeds so __del__ stays quiet
        self._released = True

        if options is None:
            raise ConfigurationError(
                "Storage options are required",
                field="options",
                suggestion="Pass a list of storage configuration entries",
            )

        entries = self._validate(list(options))
        self._backends = self._build(entries)
        self._released = False
        logger.info(
            "Storage manager ready with %d backend(s): %s",
            len(self._backends),
            ", ".join(name.value for name in self._backends) or "none",
        )

    @classmethod
    def from_config(
        cls,
        path: Union[str, Path],
        environment: Optional[str] = None,
    ) -> "StorageManager":
        """Build a manager from a YAML configuration file."""
        from storage_exchange.config_loader import load_storage_options

        return cls(load_storage_options(path, environment=environment))

    @staticmethod
    def _validate(
        options: List[OptionsInput],
    ) -> List[Tuple[StorageName, StorageOptionsBase, BackendFactory]]:
        """Check every entry and raise once with all problems found."""
        issues: List[str] = []
        unsupported = False
        seen: Dict[str, int] = {}
        entries: List[Tuple[StorageName, StorageOptionsBase, BackendFactory]] = []

        for index, raw in enumerate(options):
            label = f"entry {index}"

            if isinstance(raw, StorageOptionsBase):
                entry = raw
            elif isinstance(raw, Mapping):
                try:
                    entry = parse_storage_options(dict(raw))
                except ValidationError as e:
                    messages = "; ".join(err["msg"] for err in e.errors())
                    issues.append(f"{label}: {messages}")
                    if any(err["type"].startswith("union_tag") for err in e.errors()):
                        unsupported = True
                    continue
            else:
                issues.append(f"{label}: unsupported configuration type {type(raw).__name__}")
                unsupported = True
                continue

            label = f"{label} ({entry.name})"

            if entry.name in seen:
                issues.append(
                    f"{label}: duplicate storage name '{entry.name}' (first defined by entry {seen[entry.name]})"
                )
            else:
                seen[entry.name] = index

            name = StorageName.parse(entry.name)
            if name is None:
                issues.append(
                    f"{label}: unknown storage name '{entry.name}'; "
                    f"expected one of {', '.join(StorageName.values())}"
                )

            factory = _factory_for(entry)
            if factory is None:
                issues.append(f"{label}: no backend factory for {type(entry).__name__}")
                unsupported = True

            if name is not None and factory is not None:
                entries.append((name, entry, factory))

        if issues:
            error_cls = UnsupportedConfigurationError if unsupported else ConfigurationError
            raise error_cls("Invalid storage configuration", issues=issues)
        return entries

    @staticmethod
    def _build(
        entries: List[Tuple[StorageName, StorageOptionsBase, BackendFactory]],
    ) -> Dict[StorageName, StorageBackend]:
        backends: Dict[StorageName, StorageBackend] = {}
        for name, entry, factory in entries:
            try:
                backends[name] = factory(entry)
            except Exception as e:
                logger.error("Failed to create storage %s: %s", name.value, e)
                for built_name, backend in backends.items():
                    try:
                        backend.close()
                    except Exception as close_error:
                        logger.warning(
                            "Failed to release storage %s after construction error: %s",
                            built_name.value,
                            close_error,
                        )
                raise ConfigurationError(
                    f"Failed to create storage {name.value}: {e}",
                    field="name",
                    value=name.value,
                ) from e
            logger.debug("Created storage %s: %r", name.value, backends[name])
        return backends

    @property
    def names(self) -> List[StorageName]:
        """Registered storage names, in configuration order."""
        return list(self._backends)

    @property
    def released(self) -> bool:
        return self._released

    def __contains__(self, name: object) -> bool:
        storage_name = StorageName.parse(name)
        return storage_name is not None and storage_name in self._backends

    def __len__(self) -> int:
        return len(self._backends)

    def lookup(self, name: Union[StorageName, str]) -> StorageFacade:
        """Return a facade over the storage registered as ``name``.

        Raises:
            NotRegisteredError: If nothing is registered under ``name``
            InvalidOperationError: If the manager has been released
        """
        if self._released:
            raise InvalidOperationError("Storage manager has been released")

        storage_name = StorageName.parse(name)
        backend = self._backends.get(storage_name) if storage_name is not None else None
        if backend is None:
            raise NotRegisteredError(name, registered=[n.value for n in self._backends])
        return StorageFacade(storage_name, backend)

    async def release(self) -> List[ReleaseFailure]:
        """Release every backend. Idempotent.

        Every backend is attempted even when some fail. Failures are
        logged and returned, never raised. Cancelling the caller does not
        interrupt the release; the cancellation is re-raised once every
        backend has been attempted.
        """
        if self._released:
            return []
        self._released = True

        backends, self._backends = self._backends, {}
        releasing = asyncio.ensure_future(self._release_backends(backends))
        cancelled = False
        while not releasing.done():
            try:
                await asyncio.shield(releasing)
            except asyncio.CancelledError:
                cancelled = True
        if cancelled:
            raise asyncio.CancelledError()
        return releasing.result()

    @staticmethod
    async def _release_backends(
        backends: Dict[StorageName, StorageBackend],
    ) -> List[ReleaseFailure]:
        failures: List[ReleaseFailure] = []
        for name, backend in backends.items():
            try:
                await backend.release()
            except Exception as e:
                logger.error("Failed to release storage %s: %s", name.value, e)
                failures.append(ReleaseFailure(name, e))

        logger.info(
            "Released %d storage backend(s), %d failure(s)",
            len(backends),
            len(failures),
        )
        return failures

    async def __aenter__(self) -> "StorageManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()

    def __del__(self) -> None:
        if not getattr(self, "_released", True):
            warnings.warn(
                f"StorageManager with {len(self._backends)} backend(s) was never released",
                ResourceWarning,
                source=self,
            )

    def __repr__(self) -> str:
        state = "released" if self._released else "open"
        names = ", ".join(name.value for name in self._backends)
        return f"StorageManager([{names}], {state})"
