"""业务包注册中心：按名称登记可被主应用启用的业务包。"""

from __future__ import annotations

import os
from typing import Dict

from . import portal
from .types import AppPackage

DEFAULT_PACKAGE = portal.package.name

PACKAGE_REGISTRY: Dict[str, AppPackage] = {
    package.name: package for package in (portal.package,)
}


def get_active_package() -> AppPackage:
    """读取 ``APP_ACTIVE_PACKAGE``（默认 ``portal``）并返回对应业务包。"""
    package_name = os.getenv("APP_ACTIVE_PACKAGE") or DEFAULT_PACKAGE
    package = PACKAGE_REGISTRY.get(package_name)
    if package is None:
        available = ", ".join(sorted(PACKAGE_REGISTRY))
        raise RuntimeError(f"未找到名为 '{package_name}' 的业务包，可用选项：{available}")
    return package


__all__ = ["DEFAULT_PACKAGE", "PACKAGE_REGISTRY", "get_active_package"]
