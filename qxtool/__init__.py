"""qxtool - 组件化应用框架的命令行工具链

包管理（兼容性解析 / 安装 / 移除 / 迁移）与应用编译（目标编排 / 生成 / 写出）。
"""

__version__ = "1.0.0"
