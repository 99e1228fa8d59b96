"""目录数据模型

数据类:
- AuxiliaryFile: 模块附带的辅助文件（jar 等），独立校验哈希
- Module: 单个模块的元信息
- SourceManifest: 某个源的一代清单
- SourceCatalog: 某个源的 installed / available 视图
- Catalog: 一次请求涉及的多个源合并后的只读视图
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

JAR_KIND = "jar"


@dataclass(frozen=True)
class AuxiliaryFile:
    """模块需要的辅助文件"""

    name: str
    content_hash: str = ""
    kind: str = ""             # "jar" 表示需要放到单独的加载路径
    init_class_name: str = ""  # 模块加载前需要静态初始化的类
    file_path: str = ""        # 相对源根目录的路径，缺省同 name

    @property
    def path(self) -> str:
        return self.file_path or self.name

    @property
    def is_jar(self) -> bool:
        return self.kind == JAR_KIND


@dataclass(frozen=True)
class Module:
    """单个模块（库）的元信息，name 在同一代清单内唯一"""

    name: str
    source_id: int
    file_path: str
    content_hash: str = ""
    level: int = 0  # 加载顺序，小的先加载
    depends_on: tuple[str, ...] = ()
    replaces: tuple[str, ...] = ()
    auxiliary_files: tuple[AuxiliaryFile, ...] = ()
    url: str = ""  # 为空时由源地址 + file_path 推导

    def to_dict(self) -> dict:
        data: dict = {
            "file": self.file_path,
            "hash": self.content_hash,
            "level": self.level,
        }
        if self.depends_on:
            data["depends"] = list(self.depends_on)
        if self.replaces:
            data["replaces"] = list(self.replaces)
        if self.auxiliary_files:
            data["aux"] = [_aux_to_dict(a) for a in self.auxiliary_files]
        if self.url:
            data["url"] = self.url
        return data


def _aux_to_dict(aux: AuxiliaryFile) -> dict[str, str]:
    data = {"name": aux.name, "hash": aux.content_hash}
    if aux.kind:
        data["kind"] = aux.kind
    if aux.init_class_name:
        data["init_class"] = aux.init_class_name
    if aux.file_path and aux.file_path != aux.name:
        data["file"] = aux.file_path
    return data


@dataclass
class SourceManifest:
    """某个源的一代清单（已解析的结构化数据）"""

    source_id: int
    repository: str
    generation: str = ""       # 远端 versions 中的 latest 标识
    feature_version: int = 0   # 该代模块集合提供的特性版本
    modules: dict[str, Module] = field(default_factory=dict)
    loader_class_name: str = ""
    environment_variables: dict[str, str] = field(default_factory=dict)
    application_parameters: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "generation": self.generation,
            "feature_version": self.feature_version,
            "loader_class_name": self.loader_class_name,
            "environment_variables": dict(self.environment_variables),
            "application_parameters": list(self.application_parameters),
            "modules": {name: m.to_dict() for name, m in self.modules.items()},
        }


@dataclass
class SourceCatalog:
    """单个源的目录：installed 为本地已校验存在的模块，available 为清单声明可拉取的模块"""

    source_id: int
    repository: str
    libs_root: str
    installed: dict[str, Module] = field(default_factory=dict)
    available: dict[str, Module] = field(default_factory=dict)
    manifest: SourceManifest | None = None


@dataclass
class Catalog:
    """多源合并后的只读视图，供解析器查询"""

    installed: dict[str, Module] = field(default_factory=dict)
    available: dict[str, Module] = field(default_factory=dict)
    roots: dict[int, str] = field(default_factory=dict)
    feature_version: int = -1
    loader_class_name: str = ""
    environment_variables: dict[str, str] = field(default_factory=dict)
    application_parameters: list[str] = field(default_factory=list)
    loaded: bool = False  # 至少有一个源存在本地清单

    @classmethod
    def merge(cls, parts: list[SourceCatalog]) -> Catalog:
        """按源顺序合并，同名模块以靠前的源为准"""
        catalog = cls()
        for part in parts:
            catalog.roots[part.source_id] = part.libs_root
            for name, module in part.installed.items():
                catalog.installed.setdefault(name, module)
            for name, module in part.available.items():
                catalog.available.setdefault(name, module)
            manifest = part.manifest
            if manifest is None:
                continue
            catalog.loaded = True
            catalog.feature_version = max(catalog.feature_version, manifest.feature_version)
            if not catalog.loader_class_name:
                catalog.loader_class_name = manifest.loader_class_name
            for key, value in manifest.environment_variables.items():
                catalog.environment_variables.setdefault(key, value)
            catalog.application_parameters.extend(manifest.application_parameters)
        return catalog

    def root_of(self, source_id: int) -> str:
        return self.roots.get(source_id, "")

    def path_of(self, module: Module) -> str:
        return str(Path(self.root_of(module.source_id)) / module.file_path)

    def aux_path_of(self, module: Module, aux: AuxiliaryFile) -> str:
        return str(Path(self.root_of(module.source_id)) / aux.path)
