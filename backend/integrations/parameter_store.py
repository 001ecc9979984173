"""Parameter store — configuration values injected into task handlers.

Handlers receive the dataset connection parameters (host, user, name,
password, port) through their task context. The orchestrator only passes
them along; it never inspects or validates them.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Mapping, Optional

from app.config import Settings, get_settings
from core.constants import DATASET_PARAMETER_NAMES


class ParameterStore(ABC):
    """Read-only source of named configuration values."""

    @abstractmethod
    async def get_parameters(self, names: Iterable[str]) -> dict[str, str]:
        """Return the values for the requested names; unknown names are omitted."""
        ...


class SettingsParameterStore(ParameterStore):
    """Serves parameters from application settings (environment / .env)."""

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or get_settings()

    async def get_parameters(self, names: Iterable[str] = DATASET_PARAMETER_NAMES) -> dict[str, str]:
        values = {}
        for name in names:
            value = getattr(self._settings, name, None)
            if value is not None:
                values[name] = str(value)
        return values


class StaticParameterStore(ParameterStore):
    """Fixed mapping of parameters; used for local runs and tests."""

    def __init__(self, values: Mapping[str, str]):
        self._values = dict(values)

    async def get_parameters(self, names: Iterable[str] = DATASET_PARAMETER_NAMES) -> dict[str, str]:
        return {name: self._values[name] for name in names if name in self._values}
