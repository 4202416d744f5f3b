"""
Offline provider that answers every name with the same sample work.
"""
import threading
from typing import List, Optional

from .base import MetadataProvider, ModelCatalogProvider, ProviderResult
from ..models import AnimeMetadata
from ..ai_api import generate_stable_id

SAMPLE_METADATA = AnimeMetadata(
    id=generate_stable_id("葬送のフリーレン", 2023, "TV"),
    title_jp="葬送のフリーレン",
    title_cn="葬送的芙莉莲",
    title_tw="葬送的芙莉蓮",
    title_en="Frieren: Beyond Journey's End",
    type="TV",
    year=2023,
    confidence=0.95,
)


class MockMetadataProvider(MetadataProvider, ModelCatalogProvider):
    name = "mock"

    def __init__(self, metadata: Optional[AnimeMetadata] = None):
        self.metadata = metadata or SAMPLE_METADATA
        self.calls: List[List[str]] = []

    def analyze_batch(self, names: List[str],
                      cancel: Optional[threading.Event] = None) -> List[ProviderResult]:
        self.calls.append(list(names))
        return [ProviderResult(metadata=self.metadata) for _ in names]

    def list_models(self, refresh: bool = False) -> List[str]:
        return ["mock"]
