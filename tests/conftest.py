"""公共测试夹具: 内存中的远端源与制品下载器，以及装配好的服务组合"""

from __future__ import annotations

import threading
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from modhub.core.catalog.models import Module
from modhub.core.catalog.store import CatalogStore, parse_manifest
from modhub.core.config import Config
from modhub.core.exceptions import RetrievalError
from modhub.core.settings import Settings
from modhub.services.catalog_service import CatalogService
from modhub.services.coordinator import SessionCoordinator
from modhub.services.loader_service import LoaderService
from modhub.services.retrieval import RetrievalService
from modhub.utils.net import join_url, normalize_source_url

SOURCE_URL = "http://mirror.local/repo/"
OTHER_URL = "http://backup.local/repo/"


class FakeRemote:
    """实现 ManifestSource: 源地址 -> 当前发布的一代清单"""

    def __init__(self) -> None:
        self.published: dict[str, dict[str, Any]] = {}
        self.fetch_count = 0

    def publish(self, url: str, generation: str, modules: dict[str, dict], **extra: Any) -> None:
        self.published[normalize_source_url(url)] = {
            "generation": generation, "modules": modules, **extra,
        }

    def _entry(self, source_url: str) -> dict[str, Any]:
        entry = self.published.get(normalize_source_url(source_url))
        if entry is None:
            raise RetrievalError(f"源不可达: {source_url}")
        return entry

    def base_url(self, source_url: str, repository: str) -> str:
        return join_url(source_url, repository)

    def latest_generation(self, source_url: str, repository: str) -> str:  # noqa: ARG002
        return self._entry(source_url)["generation"]

    def fetch_manifest(self, source_id: int, source_url: str, repository: str):
        self.fetch_count += 1
        return parse_manifest(source_id, repository, dict(self._entry(source_url)))


class FakeArtifacts:
    """实现 ArtifactSource: 直接写出制品文件；gate 可用来挂起下载"""

    def __init__(self) -> None:
        self.downloaded: list[str] = []
        self.fail_on: set[str] = set()
        self.gate: threading.Event | None = None
        self.started = threading.Event()

    def download(self, module: Module, libs_root: str | Path, base_url: str) -> Path:  # noqa: ARG002
        self.started.set()
        if self.gate is not None:
            self.gate.wait(timeout=5)
        if module.name in self.fail_on:
            raise RetrievalError(f"下载失败: {module.name}")
        root = Path(libs_root)
        dest = root / module.file_path
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(module.name.encode())
        for aux in module.auxiliary_files:
            (root / aux.path).write_bytes(aux.name.encode())
        self.downloaded.append(module.name)
        return dest


def module_spec(level: int = 0, depends=(), replaces=(), content_hash: str = "", aux=None) -> dict:
    """清单中单个模块的定义，文件名由调用方的模块名推导"""
    spec: dict[str, Any] = {"level": level, "hash": content_hash}
    if depends:
        spec["depends"] = list(depends)
    if replaces:
        spec["replaces"] = list(replaces)
    if aux:
        spec["aux"] = aux
    return spec


def with_files(modules: dict[str, dict]) -> dict[str, dict]:
    return {name: {"file": f"lib{name}.so", **spec} for name, spec in modules.items()}


def loader_params(*modules: str, **overrides: Any) -> dict[str, Any]:
    params: dict[str, Any] = {
        "required_modules": list(modules),
        "application_title": "demo",
        "minimum_api_level": 2,
        "minimum_feature_version": 0,
    }
    params.update(overrides)
    return params


@pytest.fixture()
def remote() -> FakeRemote:
    return FakeRemote()


@pytest.fixture()
def artifacts() -> FakeArtifacts:
    return FakeArtifacts()


@pytest.fixture()
def hub(tmp_path: Path, remote: FakeRemote, artifacts: FakeArtifacts):
    """按容器的装配方式组合各服务，远端与下载替换为内存实现"""
    config = Config(root_dir=str(tmp_path / "hub"), default_sources=[SOURCE_URL])
    settings = Settings(config.settings_file)
    store = CatalogStore(config.root_dir)
    catalogs = CatalogService(store, settings, remote, verify_hashes=False)
    coordinator = SessionCoordinator()
    retrieval = RetrievalService(catalogs, artifacts, coordinator=coordinator)
    coordinator.set_launcher(retrieval)
    loader = LoaderService(config, settings, catalogs, coordinator)

    def seed(url: str, generation: str, modules: dict[str, dict],
             installed=(), **extra: Any) -> int:
        """发布清单、同步到本地，并把 installed 中的模块写到本地"""
        remote.publish(url, generation, with_files(modules), **extra)
        (source_id,) = settings.source_ids([url])
        repo = settings.repository
        catalogs.update_source(source_id, repo)
        root = store.libs_root(source_id, repo)
        root.mkdir(parents=True, exist_ok=True)
        for name in installed:
            (root / f"lib{name}.so").write_bytes(name.encode())
        catalogs.reload([source_id], repo)
        return source_id

    ns = SimpleNamespace(
        config=config, settings=settings, store=store, catalogs=catalogs,
        coordinator=coordinator, retrieval=retrieval, loader=loader,
        remote=remote, artifacts=artifacts, seed=seed,
        spec=module_spec, params=loader_params,
        source_url=SOURCE_URL, other_url=OTHER_URL,
    )
    yield ns
    if artifacts.gate is not None:
        artifacts.gate.set()
    retrieval.shutdown(wait=True)
