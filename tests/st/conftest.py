"""系统测试夹具: 以内存数据替代 HTTP 镜像，使用真实的服务容器"""

from __future__ import annotations

import hashlib
import io
import urllib.error
import urllib.request
from pathlib import Path

import pytest
import yaml

import modhub.core.config as cfgmod
from modhub.services.container import reset_container

MIRROR_URL = "http://mirror.local/repo/"


class Mirror:
    """按远端布局发布 versions.yml / libs-<gen>.yml / 制品"""

    def __init__(self, platform_tag: str = "linux") -> None:
        self.files: dict[str, bytes] = {}
        self.platform_tag = platform_tag

    def base(self, repository: str = "stable") -> str:
        return f"{MIRROR_URL}{repository}/{self.platform_tag}"

    def publish(self, generation: str, contents: dict[str, bytes],
                depends: dict[str, list[str]] | None = None,
                repository: str = "stable", **extra) -> None:
        depends = depends or {}
        modules = {}
        for level, (name, data) in enumerate(contents.items()):
            path = f"lib{name}.so"
            modules[name] = {
                "file": path,
                "hash": hashlib.sha1(data).hexdigest(),  # noqa: S324
                "level": level,
                "depends": depends.get(name, []),
            }
            self.files[f"{self.base(repository)}/{path}"] = data
        manifest = {"feature_version": 1, "modules": modules, **extra}
        self.files[f"{self.base(repository)}/versions.yml"] = f"latest: {generation}\n".encode()
        self.files[f"{self.base(repository)}/libs-{generation}.yml"] = yaml.safe_dump(manifest).encode()

    def urlopen(self, url, timeout=None):  # noqa: ARG002
        if url not in self.files:
            raise urllib.error.URLError(f"404: {url}")
        return io.BytesIO(self.files[url])


def _install(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, **overrides) -> Mirror:
    mirror = Mirror()
    monkeypatch.setattr(urllib.request, "urlopen", mirror.urlopen)
    cfg = cfgmod.Config(
        root_dir=str(tmp_path / "hub"),
        default_sources=[MIRROR_URL],
        platform_tag=mirror.platform_tag,
        **overrides,
    )
    monkeypatch.setattr(cfgmod, "_current", cfg)
    reset_container()
    return mirror


@pytest.fixture()
def mirror(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """自动拉取模式"""
    yield _install(tmp_path, monkeypatch)
    reset_container()


@pytest.fixture()
def manual_mirror(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """手动拉取模式，会话等待外部回调"""
    yield _install(tmp_path, monkeypatch, retrieval_mode="manual")
    reset_container()
