"""包管理服务模块

拆分说明：
- installer.py: 安装（远程发布 / 本地路径 / 按 Manifest 补全）
- remover.py: 删除
- migrator.py: 旧包系统迁移

由 qxtool.services.package_service.PackageService 统一组装。
"""

from qxtool.services.package.installer import LockfileMutation, PackageInstaller, parse_package_spec
from qxtool.services.package.migrator import MigrationGuard, MigrationResult, PackageMigrator
from qxtool.services.package.remover import PackageRemover

__all__ = [
    "LockfileMutation",
    "MigrationGuard",
    "MigrationResult",
    "PackageInstaller",
    "PackageMigrator",
    "PackageRemover",
    "parse_package_spec",
]
