"""modhub - 模块依赖解析与目录增量更新服务"""

__version__ = "0.3.0"
