"""统一异常体系

所有业务异常继承 QxToolError，替代散落的 ValueError / RuntimeError。
CLI 层据此区分：UserError 只输出干净的提示信息，其余异常附带堆栈。
"""

from __future__ import annotations


class QxToolError(Exception):
    """工具链基础异常"""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class UserError(QxToolError):
    """用户输入或项目配置无效，不需要堆栈信息"""

    code = "USER_ERROR"


class ConfigError(UserError):
    """配置文件缺失或内容无效"""

    code = "CONFIG_ERROR"


class DependencyError(UserError):
    """库依赖缺失或版本不满足"""

    code = "DEPENDENCY_ERROR"


class InvalidVersionError(QxToolError):
    """无法解析的 semver 版本字符串"""

    code = "INVALID_VERSION"


class ValidationError(QxToolError):
    """输入数据校验失败"""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, details: list[str] | None = None) -> None:
        super().__init__(message)
        self.details = details or []
