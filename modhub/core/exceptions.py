"""统一异常体系

所有业务异常继承 ModHubError。Web 层据 code 映射 HTTP 状态码，
CLI 层据此输出友好提示。

注意: "模块缺失" 不是异常，解析器以数据形式返回缺失集合。
"""

from __future__ import annotations


class ModHubError(Exception):
    """基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConfigError(ModHubError):
    """配置或设置文件缺失、内容无效"""

    code = "CONFIG_ERROR"


class ValidationError(ModHubError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []


class CatalogError(ModHubError):
    """目录 / 清单数据损坏，不能当作"没有可用模块"处理"""

    code = "CATALOG_ERROR"


class DependencyCycleError(CatalogError):
    """depends 关系成环"""

    code = "DEPENDENCY_CYCLE"

    def __init__(self, cycle: list[str]) -> None:
        super().__init__(f"模块依赖存在环: {' -> '.join(cycle)}")
        self.cycle = cycle


class RetrievalError(ModHubError):
    """清单或制品拉取失败、校验和不匹配"""

    code = "RETRIEVAL_ERROR"


class SessionNotFoundError(ModHubError):
    """会话句柄不存在或已结束"""

    code = "SESSION_NOT_FOUND"
