"""
Resource Store Module

locale 分组的字符串资源（代理 URL、状态描述）。启动时从 YAML 一次性加载，之后只读。

YAML 结构：

    proxy_urls:
      default:          # 根 bundle
        "0": http://errors.example/default
        "404": http://errors.example/404
      fr:
        "404": http://errors.example/fr/404
    status_descriptions:
      default:
        http.404: Not Found

查找顺序与 locale 回退链：fr_CA → fr → default。key 缺失时返回 None 而不是抛异常。
"""
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from utils.log_manager import get_logger

logger = get_logger(__name__)

ROOT_LOCALE = "default"
PROXY_URLS_SECTION = "proxy_urls"
STATUS_DESCRIPTIONS_SECTION = "status_descriptions"


class ResourceConfigError(Exception):
    """资源文件加载/解析失败，应视为启动期配置错误。"""


def normalize_locale(locale: Optional[str]) -> str:
    """
    规范化 locale 标识："en-us" → "en_US"，"FR" → "fr"，空值 → ""
    """
    if not locale:
        return ""
    parts = locale.strip().replace("-", "_").split("_")
    if not parts[0]:
        return ""
    normalized = [parts[0].lower()]
    if len(parts) > 1 and parts[1]:
        normalized.append(parts[1].upper())
    normalized.extend(p for p in parts[2:] if p)
    return "_".join(normalized)


def candidate_locales(locale: Optional[str]) -> List[str]:
    """
    生成回退链：最具体的 locale 在前，根 bundle 在最后
    """
    normalized = normalize_locale(locale)
    candidates: List[str] = []
    parts = normalized.split("_") if normalized else []
    while parts:
        candidates.append("_".join(parts))
        parts = parts[:-1]
    candidates.append(ROOT_LOCALE)
    return candidates


class LocaleResourceStore:
    """
    不可变的 locale → (key → value) 映射
    """

    def __init__(self, bundles: Optional[Mapping[str, Mapping[Any, Any]]] = None):
        frozen: Dict[str, Mapping[str, str]] = {}
        for locale, entries in (bundles or {}).items():
            if entries is None:
                continue
            if not isinstance(entries, Mapping):
                raise ResourceConfigError(
                    f"Bundle for locale '{locale}' must be a mapping, got {type(entries).__name__}"
                )
            key = ROOT_LOCALE if str(locale) == ROOT_LOCALE else normalize_locale(str(locale))
            # YAML 会把 404 解析成 int，这里统一转成字符串 key；None 值视为未配置
            frozen[key] = MappingProxyType(
                {str(k): str(v) for k, v in entries.items() if v is not None}
            )
        self._bundles: Mapping[str, Mapping[str, str]] = MappingProxyType(frozen)

    @property
    def locales(self) -> List[str]:
        return sorted(self._bundles)

    def lookup(self, locale: Optional[str], key: str) -> Optional[str]:
        """
        沿回退链查找 key

        Returns:
            Optional[str]: 命中的值；整条链都没有该 key（或值为空串）时返回 None
        """
        for candidate in candidate_locales(locale):
            bundle = self._bundles.get(candidate)
            if bundle is None:
                continue
            value = bundle.get(key)
            if value:
                return value
        return None

    def __len__(self) -> int:
        return len(self._bundles)


@dataclass(frozen=True)
class ErrorResources:
    """
    错误代理所需的两份资源：状态码 → 代理 URL，"http.<状态码>" → 状态描述
    """

    proxy_urls: LocaleResourceStore
    status_descriptions: LocaleResourceStore

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ErrorResources":
        if not isinstance(data, Mapping):
            raise ResourceConfigError("Resource document must be a mapping")
        return cls(
            proxy_urls=LocaleResourceStore(data.get(PROXY_URLS_SECTION) or {}),
            status_descriptions=LocaleResourceStore(data.get(STATUS_DESCRIPTIONS_SECTION) or {}),
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "ErrorResources":
        """
        从 YAML 文件加载资源

        Raises:
            ResourceConfigError: 文件不存在或内容无法解析
        """
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError as e:
            raise ResourceConfigError(f"Resource file not found: {path}") from e
        except yaml.YAMLError as e:
            raise ResourceConfigError(f"Failed to parse resource file {path}: {e}") from e

        resources = cls.from_mapping(data)
        logger.info(
            "Error proxy resources loaded | url_locales={} description_locales={}",
            resources.proxy_urls.locales,
            resources.status_descriptions.locales,
            extra={"path": str(path)}
        )
        return resources
