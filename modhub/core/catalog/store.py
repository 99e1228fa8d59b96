"""本地目录存储

职责:
- 本地存储布局（清单文件、制品目录）
- 清单 YAML <-> SourceManifest 转换
- 从本地清单构建 SourceCatalog（校验制品存在性与哈希）
- 尽力删除制品文件

布局:
    {root}/manifests/{source_id}_{repository}.yml
    {root}/dl/{source_id}/{repository}/<file_path>
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Any

import yaml

from modhub.core.catalog.models import (
    AuxiliaryFile,
    Module,
    SourceCatalog,
    SourceManifest,
)
from modhub.core.exceptions import CatalogError, ConfigError
from modhub.utils.yaml_io import load_yaml, save_yaml

logger = logging.getLogger(__name__)


def _str_list(value: Any, field_name: str, module: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise CatalogError(f"模块 '{module}' 的 {field_name} 必须是字符串列表")
    return tuple(value)


def _relative_path(value: str, module: str) -> str:
    """清单中的文件路径必须是制品目录内的相对路径"""
    posix = PurePosixPath(value.replace("\\", "/"))
    if posix.is_absolute() or PureWindowsPath(value).anchor or ".." in posix.parts:
        raise CatalogError(f"模块 '{module}' 的文件路径不合法: {value!r}")
    return value


def artifact_path(libs_root: str | Path, relative: str) -> Path:
    """拼接制品路径，结果落在 libs_root 之外时抛 CatalogError"""
    base = Path(libs_root)
    resolved_base = base.resolve()
    if not (resolved_base / relative).resolve().is_relative_to(resolved_base):
        raise CatalogError(f"制品路径超出存储目录: {relative!r}")
    return base / relative


def _parse_aux(raw: Any, module: str) -> tuple[AuxiliaryFile, ...]:
    if not raw:
        return ()
    if not isinstance(raw, list):
        raise CatalogError(f"模块 '{module}' 的 aux 必须是列表")
    files = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("name"):
            raise CatalogError(f"模块 '{module}' 存在无效的 aux 条目: {item!r}")
        aux = AuxiliaryFile(
            name=str(item["name"]),
            content_hash=str(item.get("hash", "")),
            kind=str(item.get("kind", "")),
            init_class_name=str(item.get("init_class", "") or ""),
            file_path=str(item.get("file", "") or ""),
        )
        _relative_path(aux.path, module)
        files.append(aux)
    return tuple(files)


def _parse_module(name: str, info: Any, source_id: int) -> Module:
    if not isinstance(info, dict):
        raise CatalogError(f"模块 '{name}' 的定义必须是字典")
    file_path = info.get("file")
    if not file_path:
        raise CatalogError(f"模块 '{name}' 未定义 file")
    level = info.get("level", 0)
    if isinstance(level, bool) or not isinstance(level, int):
        raise CatalogError(f"模块 '{name}' 的 level 必须是整数: {level!r}")
    return Module(
        name=name,
        source_id=source_id,
        file_path=_relative_path(str(file_path), name),
        content_hash=str(info.get("hash", "")),
        level=level,
        depends_on=_str_list(info.get("depends"), "depends", name),
        replaces=_str_list(info.get("replaces"), "replaces", name),
        auxiliary_files=_parse_aux(info.get("aux"), name),
        url=str(info.get("url", "") or ""),
    )


def parse_manifest(source_id: int, repository: str, data: dict[str, Any]) -> SourceManifest:
    """将结构化清单数据转换为 SourceManifest

    异常:
        CatalogError: 清单结构无效
    """
    if not isinstance(data, dict):
        raise CatalogError(f"源 {source_id} 的清单不是字典")
    modules_raw = data.get("modules") or {}
    if not isinstance(modules_raw, dict):
        raise CatalogError(f"源 {source_id} 的 modules 段必须是字典")

    env = data.get("environment_variables") or {}
    params = data.get("application_parameters") or []
    if not isinstance(env, dict) or not isinstance(params, list):
        raise CatalogError(f"源 {source_id} 的 environment_variables / application_parameters 格式无效")

    try:
        feature_version = int(data.get("feature_version", 0))
    except (TypeError, ValueError) as e:
        raise CatalogError(f"源 {source_id} 的 feature_version 无效") from e

    return SourceManifest(
        source_id=source_id,
        repository=repository,
        generation=str(data.get("generation", "")),
        feature_version=feature_version,
        modules={
            str(name): _parse_module(str(name), info, source_id)
            for name, info in modules_raw.items()
        },
        loader_class_name=str(data.get("loader_class_name", "") or ""),
        environment_variables={str(k): str(v) for k, v in env.items()},
        application_parameters=[str(p) for p in params],
    )


def file_hash(path: Path, algorithm: str) -> str:
    """计算文件内容哈希（hex）"""
    try:
        digest = hashlib.new(algorithm)
    except ValueError as e:
        raise ConfigError(f"不支持的哈希算法: {algorithm}") from e
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            digest.update(chunk)
    return digest.hexdigest()


def delete_artifact(path: Path) -> bool:
    """尽力删除制品文件，失败只记录日志"""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.warning("删除制品失败: %s (%s)", path, e)
        return False
    return True


class CatalogStore:
    """本地目录存储：清单读写与已安装模块校验"""

    def __init__(self, root_dir: str | Path, hash_algorithm: str = "sha1") -> None:
        self.root = Path(root_dir)
        self.hash_algorithm = hash_algorithm

    # ---- 布局 ----

    def manifest_file(self, source_id: int, repository: str) -> Path:
        return self.root / "manifests" / f"{source_id}_{repository}.yml"

    def libs_root(self, source_id: int, repository: str) -> Path:
        return self.root / "dl" / str(source_id) / repository

    # ---- 清单 ----

    def load_manifest(self, source_id: int, repository: str) -> SourceManifest | None:
        """读取本地清单，不存在返回 None；文件损坏抛 CatalogError"""
        path = self.manifest_file(source_id, repository)
        if not path.exists():
            return None
        try:
            data = load_yaml(path)
        except (yaml.YAMLError, ValueError, OSError) as e:
            raise CatalogError(f"本地清单无法读取: {path} - {e}") from e
        return parse_manifest(source_id, repository, data)

    def save_manifest(self, manifest: SourceManifest) -> Path:
        path = self.manifest_file(manifest.source_id, manifest.repository)
        save_yaml(path, manifest.to_dict())
        logger.info(
            "本地清单已保存: source=%s repo=%s generation=%s (%d 个模块)",
            manifest.source_id, manifest.repository,
            manifest.generation, len(manifest.modules),
        )
        return path

    # ---- 目录构建 ----

    def is_installed(self, module: Module, libs_root: Path, verify_hashes: bool) -> bool:
        """模块制品及全部辅助文件都存在（且哈希一致）才算已安装"""
        files = [(libs_root / module.file_path, module.content_hash)]
        files.extend((libs_root / a.path, a.content_hash) for a in module.auxiliary_files)
        for path, expected in files:
            if not path.is_file():
                return False
            if verify_hashes and expected:
                actual = file_hash(path, self.hash_algorithm)
                if actual != expected:
                    logger.warning("哈希不匹配，视为未安装: %s", path)
                    return False
        return True

    def build_catalog(
        self, source_id: int, repository: str, *, verify_hashes: bool = True,
    ) -> SourceCatalog:
        """按本地清单构建单个源的目录"""
        libs_root = self.libs_root(source_id, repository)
        catalog = SourceCatalog(
            source_id=source_id, repository=repository, libs_root=str(libs_root),
        )
        manifest = self.load_manifest(source_id, repository)
        if manifest is None:
            return catalog

        catalog.manifest = manifest
        catalog.available = dict(manifest.modules)
        for name, module in manifest.modules.items():
            if self.is_installed(module, libs_root, verify_hashes):
                catalog.installed[name] = module
        logger.debug(
            "源 %s/%s: %d 已安装 / %d 可用",
            source_id, repository, len(catalog.installed), len(catalog.available),
        )
        return catalog
