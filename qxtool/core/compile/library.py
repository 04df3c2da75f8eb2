"""库（Library）加载

从库根目录的 Manifest.json 读取命名空间、版本、源码 / 资源 / 翻译目录和依赖声明。
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from qxtool.core.exceptions import UserError
from qxtool.utils.file_io import load_json

logger = logging.getLogger(__name__)

MANIFEST_NAME = "Manifest.json"


@dataclass
class Library:
    namespace: str
    root_dir: Path
    version: str = ""
    class_path: str = "source/class"
    resource_path: str = "source/resource"
    translation_path: str = "source/translation"
    boot_path: str = "source/boot"
    library_info: dict[str, Any] = field(default_factory=dict)
    requires: dict[str, str] = field(default_factory=dict)
    provides: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, root_dir: str | Path, manifest_name: str = MANIFEST_NAME) -> Library:
        """读取库清单，缺失或无命名空间时抛 UserError"""
        root = Path(root_dir)
        manifest_path = root / manifest_name
        try:
            data = load_json(manifest_path, default=None)
        except json.JSONDecodeError as e:
            raise UserError(f"库清单格式错误: {manifest_path} ({e})") from e
        if not data:
            raise UserError(f"找不到库清单: {manifest_path}")

        provides = data.get("provides") or {}
        namespace = provides.get("namespace")
        if not namespace:
            raise UserError(f"库清单未声明 provides.namespace: {manifest_path}")
        info = data.get("info") or {}
        lib = cls(
            namespace=namespace,
            root_dir=root,
            version=str(info.get("version", "")),
            class_path=provides.get("class", "source/class"),
            resource_path=provides.get("resource", "source/resource"),
            translation_path=provides.get("translation", "source/translation"),
            boot_path=provides.get("boot", "source/boot"),
            library_info=info,
            requires=dict(data.get("requires") or {}),
            provides=provides,
        )
        logger.debug("已加载库 %s (%s) -> %s", lib.namespace, lib.version, root)
        return lib

    @property
    def class_dir(self) -> Path:
        return self.root_dir / self.class_path

    @property
    def resource_dir(self) -> Path:
        return self.root_dir / self.resource_path

    @property
    def translation_dir(self) -> Path:
        return self.root_dir / self.translation_path

    @property
    def boot_dir(self) -> Path:
        return self.root_dir / self.boot_path

    @property
    def webfonts(self) -> list[dict[str, Any]]:
        return list(self.provides.get("webfonts") or [])

    def class_file(self, class_name: str) -> Path:
        return self.class_dir / (class_name.replace(".", "/") + ".js")

    def owns_class(self, class_name: str) -> bool:
        return class_name == self.namespace or class_name.startswith(self.namespace + ".")
