"""远程清单与制品拉取

职责:
- 读取远端 versions.yml，得到最新一代清单标识
- 拉取并解析 libs-<generation>.yml
- 下载模块制品及辅助文件，校验内容哈希

远端布局:
    {source}{repository}/{platform_tag}/versions.yml     -> {latest: <generation>}
    {source}{repository}/{platform_tag}/libs-<gen>.yml   -> 清单
    {source}{repository}/{platform_tag}/<file_path>      -> 制品（模块未声明 url 时）
"""

from __future__ import annotations

import logging
import os
import shutil
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any

import yaml

from modhub.core.catalog.models import Module, SourceManifest
from modhub.core.catalog.store import artifact_path, file_hash, parse_manifest
from modhub.core.exceptions import CatalogError, RetrievalError
from modhub.utils.net import join_url, validate_url_scheme

logger = logging.getLogger(__name__)


class ManifestFetcher:
    """远程清单拉取器"""

    def __init__(self, platform_tag: str = "default", timeout: int = 30) -> None:
        self.platform_tag = platform_tag
        self.timeout = timeout

    def base_url(self, source_url: str, repository: str) -> str:
        return join_url(source_url, repository, self.platform_tag)

    def _get_yaml(self, url: str) -> dict[str, Any]:
        validate_url_scheme(url, context="manifest")
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as resp:  # nosec B310
                data = yaml.safe_load(resp.read().decode("utf-8"))
        except (urllib.error.URLError, OSError) as e:
            raise RetrievalError(f"清单拉取失败: {url} - {e}") from e
        except (yaml.YAMLError, UnicodeDecodeError) as e:
            raise CatalogError(f"远端清单格式错误: {url} - {e}") from e
        if not isinstance(data, dict):
            raise CatalogError(f"远端清单不是字典: {url}")
        return data

    def latest_generation(self, source_url: str, repository: str) -> str:
        """远端最新一代清单标识"""
        url = join_url(self.base_url(source_url, repository), "versions.yml")
        data = self._get_yaml(url)
        latest = data.get("latest")
        if latest is None or str(latest) == "":
            raise CatalogError(f"远端 versions 缺少 latest: {url}")
        return str(latest)

    def fetch_manifest(
        self, source_id: int, source_url: str, repository: str,
    ) -> SourceManifest:
        generation = self.latest_generation(source_url, repository)
        url = join_url(self.base_url(source_url, repository), f"libs-{generation}.yml")
        logger.info("拉取清单: %s", url)
        manifest = parse_manifest(source_id, repository, self._get_yaml(url))
        if not manifest.generation:
            manifest.generation = generation
        return manifest


class ArtifactFetcher:
    """模块制品下载器：先写 .part 临时文件，校验通过后再替换"""

    def __init__(
        self,
        hash_algorithm: str = "sha1",
        timeout: int = 30,
        verify_hashes: bool = True,
    ) -> None:
        self.hash_algorithm = hash_algorithm
        self.timeout = timeout
        self.verify_hashes = verify_hashes

    def download(self, module: Module, libs_root: str | Path, base_url: str) -> Path:
        """下载模块制品和全部辅助文件，返回制品本地路径"""
        url = module.url or join_url(base_url, module.file_path)
        dest = self._fetch_file(url, self._target(libs_root, module.file_path), module.content_hash)
        for aux in module.auxiliary_files:
            self._fetch_file(
                join_url(base_url, aux.path), self._target(libs_root, aux.path), aux.content_hash,
            )
        logger.info("模块已下载: %s -> %s", module.name, dest)
        return dest

    @staticmethod
    def _target(libs_root: str | Path, relative: str) -> Path:
        try:
            return artifact_path(libs_root, relative)
        except CatalogError as e:
            raise RetrievalError(str(e)) from e

    def _fetch_file(self, url: str, dest: Path, expected_hash: str) -> Path:
        validate_url_scheme(url, context=f"artifact {dest.name}")
        dest.parent.mkdir(parents=True, exist_ok=True)
        tmp = dest.with_name(dest.name + ".part")

        logger.debug("  下载: %s", url)
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as resp, \
                    open(tmp, "wb") as out:  # nosec B310
                shutil.copyfileobj(resp, out)
        except (urllib.error.URLError, OSError) as e:
            tmp.unlink(missing_ok=True)
            raise RetrievalError(f"下载失败: {url} - {e}") from e

        if self.verify_hashes and expected_hash:
            actual = file_hash(tmp, self.hash_algorithm)
            if actual != expected_hash:
                tmp.unlink(missing_ok=True)
                raise RetrievalError(
                    f"校验和不匹配 {dest.name}: 期望 {expected_hash}, 实际 {actual}",
                )
        os.replace(tmp, dest)
        return dest
