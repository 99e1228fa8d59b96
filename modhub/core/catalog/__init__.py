"""模块目录

- models.py: 数据模型
- store.py: 本地清单与存储布局
- resolver.py: 依赖解析
- differ.py: 增量更新比对
- fetcher.py: 远程清单 / 制品拉取
"""

from modhub.core.catalog.differ import DiffResult, UpdateDiffer
from modhub.core.catalog.fetcher import ArtifactFetcher, ManifestFetcher
from modhub.core.catalog.models import (
    AuxiliaryFile,
    Catalog,
    Module,
    SourceCatalog,
    SourceManifest,
)
from modhub.core.catalog.resolver import ModuleResolver, ResolutionResult
from modhub.core.catalog.store import CatalogStore, parse_manifest

__all__ = [
    "ArtifactFetcher",
    "AuxiliaryFile",
    "Catalog",
    "CatalogStore",
    "DiffResult",
    "ManifestFetcher",
    "Module",
    "ModuleResolver",
    "ResolutionResult",
    "SourceCatalog",
    "SourceManifest",
    "UpdateDiffer",
    "parse_manifest",
]
