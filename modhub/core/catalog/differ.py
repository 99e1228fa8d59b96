"""目录增量更新比对

对比某个源上一代的已安装模块与新清单:
  - 新清单中不存在 → removed，删除制品及全部辅助文件
  - 内容哈希不同，或辅助文件 (name, hash) 集合不同 → changed，
    删除旧制品（稍后重新拉取），以 "name_sourceId" 为键记录新模块
  - 仅出现在新清单中的模块不在此报告，下次解析时自然成为缺失模块

只比较哈希与辅助文件标识，不看时间戳和文件大小。
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from modhub.core.catalog.models import Module
from modhub.core.catalog.store import artifact_path, delete_artifact
from modhub.core.exceptions import CatalogError

logger = logging.getLogger(__name__)

ArtifactDeleter = Callable[[Path], object]


@dataclass
class DiffResult:
    """比对结果"""

    changed: dict[str, Module] = field(default_factory=dict)
    removed: set[str] = field(default_factory=set)

    @property
    def empty(self) -> bool:
        return not self.changed and not self.removed


def changed_key(name: str, source_id: int) -> str:
    """changed 集合的键，后缀区分不同源的同名模块"""
    return f"{name}_{source_id}"


def auxiliary_changed(old: Module, new: Module) -> bool:
    """辅助文件数量不同，或新文件的 (name, hash) 在旧集合中找不到"""
    old_aux = old.auxiliary_files
    new_aux = new.auxiliary_files
    if len(old_aux) != len(new_aux):
        return True
    old_ids = {(a.name, a.content_hash) for a in old_aux}
    return any((a.name, a.content_hash) not in old_ids for a in new_aux)


def module_changed(old: Module, new: Module) -> bool:
    if old.content_hash != new.content_hash:
        return True
    return auxiliary_changed(old, new)


class UpdateDiffer:
    """增量更新比对器，附带清理被删除 / 变更模块的本地文件"""

    def __init__(self, deleter: ArtifactDeleter | None = None) -> None:
        self._delete = deleter or delete_artifact

    def clean(self, libs_root: Path, module: Module) -> None:
        """删除模块制品及其辅助文件，单个失败不影响其余文件

        路径超出 libs_root 的文件不删除。
        """
        relatives = [module.file_path, *(a.path for a in module.auxiliary_files)]
        for relative in relatives:
            try:
                path = artifact_path(libs_root, relative)
            except CatalogError as e:
                logger.error("跳过清理 %s: %s", module.name, e)
                continue
            try:
                self._delete(path)
            except OSError as e:
                logger.warning("清理文件失败: %s (%s)", path, e)

    def diff(
        self,
        source_id: int,
        old_installed: Mapping[str, Module],
        new_manifest: Mapping[str, Module],
        libs_root: str | Path,
    ) -> DiffResult:
        root = Path(libs_root)
        result = DiffResult()

        for name, old in old_installed.items():
            new = new_manifest.get(name)
            if new is None:
                logger.info("模块已从清单移除: %s (source=%s)", name, source_id)
                self.clean(root, old)
                result.removed.add(name)
                continue

            if not module_changed(old, new):
                continue

            logger.info("模块已变更，需要重新拉取: %s (source=%s)", name, source_id)
            self.clean(root, old)
            result.changed[changed_key(name, source_id)] = new

        if not result.empty:
            logger.info(
                "源 %s 比对完成: %d 变更, %d 移除",
                source_id, len(result.changed), len(result.removed),
            )
        return result
