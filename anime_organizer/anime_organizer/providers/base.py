"""
Capability interfaces shared by every metadata provider.
"""
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from ..models import AnimeMetadata, ProviderError


@dataclass(frozen=True)
class ProviderResult:
    """
    Outcome for one input name.

    Exactly one of three shapes:
      - metadata set, error None: the provider identified something
      - error set: a provider-level failure (no key, rate limit, ...)
      - both None: the provider had no information for this name
    """
    metadata: Optional[AnimeMetadata] = None
    error: Optional[ProviderError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: ProviderError) -> "ProviderResult":
        return cls(metadata=None, error=error)

    @classmethod
    def empty(cls) -> "ProviderResult":
        return cls()


def fill_error(count: int, error: ProviderError) -> List[ProviderResult]:
    """The same failure for every position of a batch."""
    return [ProviderResult.failure(error) for _ in range(count)]


class MetadataProvider(ABC):
    """Turns folder names into metadata, one result per name in input order."""

    name: str = "provider"

    @abstractmethod
    def analyze_batch(self, names: List[str],
                      cancel: Optional[threading.Event] = None) -> List[ProviderResult]:
        ...

    def close(self) -> None:
        """Releases background resources (pacer thread, HTTP session)."""
        pass


class ModelCatalogProvider(ABC):
    """Lists the model names a provider accepts."""

    @abstractmethod
    def list_models(self, refresh: bool = False) -> List[str]:
        ...
