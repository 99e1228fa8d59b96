"""模块依赖解析器

职责:
- 递归展开请求模块及其 depends，判断是否全部本地可用
- 应用 replaces（取代关系）剔除被取代的模块
- 按 level 稳定排序得到加载顺序
- 按需收集缺失模块（连同其依赖）供拉取规划

只读本地目录，不触发任何下载；缺失模块以数据形式返回，不抛异常。
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from modhub.core.catalog.models import Catalog, Module
from modhub.core.exceptions import DependencyCycleError

logger = logging.getLogger(__name__)


@dataclass
class ResolutionResult:
    """一次解析的结果"""

    modules: list[Module] = field(default_factory=list)   # 按加载顺序
    libraries: list[str] = field(default_factory=list)    # 与 modules 对应的制品路径
    jars: list[str] = field(default_factory=list)         # 需放到单独加载路径的辅助文件
    init_classes: list[str] = field(default_factory=list)
    ok: bool = True
    missing: dict[str, Module] = field(default_factory=dict)

    @property
    def names(self) -> list[str]:
        return [m.name for m in self.modules]


class _ResolutionPass:
    """单次解析的累积状态，按模块名记忆化"""

    def __init__(self, catalog: Catalog, collect_missing: bool) -> None:
        self.catalog = catalog
        self.resolved: dict[str, Module] = {}
        # dict 充当有序集合
        self.jars: dict[str, None] = {}
        self.init_classes: dict[str, None] = {}
        self.missing: dict[str, Module] | None = {} if collect_missing else None
        self._resolving: list[str] = []

    def add(self, name: str) -> bool:
        """解析单个模块，返回它及其全部依赖是否本地可用"""
        if name in self._resolving:
            start = self._resolving.index(name)
            raise DependencyCycleError(self._resolving[start:] + [name])

        if name in self.resolved:
            return True

        module = self.catalog.installed.get(name)
        if module is not None:
            return self._add_installed(module)

        if self.missing is not None and name not in self.missing:
            candidate = self.catalog.available.get(name)
            if candidate is not None:
                logger.info("模块未安装: %s", name)
                self.missing[name] = candidate
                # 继续展开其依赖，得到完整的传递拉取计划
                self._expand(candidate)
        return False

    def _add_installed(self, module: Module) -> bool:
        self.resolved[module.name] = module
        for aux in module.auxiliary_files:
            if aux.is_jar:
                self.jars[self.catalog.aux_path_of(module, aux)] = None
            if aux.init_class_name:
                self.init_classes[aux.init_class_name] = None

        ok = self._expand(module)

        # 依赖展开之后再剔除，后解析到的取代者也能逐出先前的模块
        for victim in module.replaces:
            if victim != module.name and self.resolved.pop(victim, None) is not None:
                logger.debug("模块 %s 被 %s 取代", victim, module.name)
        return ok

    def evict_replaced(self) -> None:
        """剔除被任一保留模块取代的模块（与解析顺序无关）"""
        for name in list(self.resolved):
            module = self.resolved.get(name)
            if module is None:
                continue
            for victim in module.replaces:
                if victim != name and self.resolved.pop(victim, None) is not None:
                    logger.debug("模块 %s 被 %s 取代", victim, name)

    def _expand(self, module: Module) -> bool:
        ok = True
        self._resolving.append(module.name)
        try:
            for dep in module.depends_on:
                # 不在第一个失败处停止，一次暴露全部缺失模块
                ok = self.add(dep) and ok
        finally:
            self._resolving.pop()
        return ok


class ModuleResolver:
    """模块依赖解析器，仅做本地查找"""

    def resolve(
        self,
        requested: Iterable[str],
        catalog: Catalog,
        collect_missing: bool = False,
    ) -> ResolutionResult:
        """解析请求的模块集合

        参数:
            requested: 请求的模块名
            catalog: 合并后的目录视图
            collect_missing: 为 True 时把缺失模块（及其依赖）记录到 result.missing

        异常:
            DependencyCycleError: depends 关系成环
        """
        state = _ResolutionPass(catalog, collect_missing)
        ok = True
        for name in requested:
            if not state.add(name):
                logger.debug("缺失: %s", name)
                ok = False
        state.evict_replaced()

        # level 是唯一的顺序信号，同级保持遇到顺序
        modules = sorted(state.resolved.values(), key=lambda m: m.level)
        return ResolutionResult(
            modules=modules,
            libraries=[catalog.path_of(m) for m in modules],
            jars=list(state.jars),
            init_classes=list(state.init_classes),
            ok=ok,
            missing=state.missing or {},
        )
