"""
可注册域名分组服务
"""
from functools import lru_cache
from typing import Dict, List, Optional, Sequence
import logging

import tldextract

from ..interfaces import ApexDeduplicatorInterface, ApexResolverInterface
from ..models import ApexGrouping, ApexResolutionError, RecordError
from .error_handler import ErrorHandler


@lru_cache(maxsize=None)
def default_extractor() -> tldextract.TLDExtract:
    """进程内共享的 tldextract 实例，使用随包发布的公共后缀列表快照（不联网）"""
    return tldextract.TLDExtract(suffix_list_urls=(), cache_dir=None)


class PublicSuffixResolver(ApexResolverInterface):
    """基于公共后缀列表的可注册域名解析"""

    def __init__(self, extractor: Optional[tldextract.TLDExtract] = None):
        """
        初始化解析器

        Args:
            extractor: tldextract 实例，默认使用共享实例
        """
        self.extractor = extractor or default_extractor()

    def apex(self, hostname: str) -> str:
        """
        计算主机名的可注册域名

        Args:
            hostname: 主机名，例如 a.example.co.uk

        Returns:
            str: 可注册域名，例如 example.co.uk

        Raises:
            ApexResolutionError: 主机名格式错误或后缀未知
        """
        host = self._clean_hostname(hostname)
        if not host:
            raise ApexResolutionError(f"无法从主机名 {hostname!r} 推导可注册域名: 主机名为空")

        if any(not label for label in host.split('.')):
            raise ApexResolutionError(f"无法从主机名 {hostname!r} 推导可注册域名: 存在空标签")

        if any(ch.isspace() or ch in '/:@' for ch in host):
            raise ApexResolutionError(f"无法从主机名 {hostname!r} 推导可注册域名: 包含非法字符")

        extracted = self.extractor(host)
        if not extracted.domain or not extracted.suffix:
            raise ApexResolutionError(f"无法从主机名 {hostname!r} 推导可注册域名: 未知的公共后缀")

        return f"{extracted.domain}.{extracted.suffix}"

    def _clean_hostname(self, hostname: str) -> str:
        """
        清理主机名格式

        Args:
            hostname: 原始主机名

        Returns:
            str: 小写、去掉首尾空白和末尾点号的主机名
        """
        if not hostname:
            return ""

        host = hostname.strip().lower()

        # 绝对域名末尾的点号
        if host.endswith('.'):
            host = host[:-1]

        return host


class ApexDeduplicator(ApexDeduplicatorInterface):
    """按可注册域名对主机名去重分组"""

    def __init__(self, resolver: Optional[ApexResolverInterface] = None,
                 error_handler: Optional[ErrorHandler] = None):
        """
        初始化分组器

        Args:
            resolver: 可注册域名解析器
            error_handler: 错误处理器
        """
        self.resolver = resolver or PublicSuffixResolver()
        self.error_handler = error_handler or ErrorHandler()
        self.logger = logging.getLogger(__name__)

    def group_by_apex(self, hostnames: Sequence[str]) -> ApexGrouping:
        """
        对主机名按可注册域名分组

        无法解析的主机名不进入任何分组，但仍保留其位置（apex 为 None），
        以便证书检查照常进行。

        Args:
            hostnames: 主机名列表（顺序有意义）

        Returns:
            ApexGrouping: 每个位置的可注册域名以及 域名 -> 位置列表 的分组
        """
        apexes: List[Optional[str]] = []
        groups: Dict[str, List[int]] = {}
        errors: Dict[int, RecordError] = {}

        for index, hostname in enumerate(hostnames):
            try:
                apex = self.resolver.apex(hostname)
            except ApexResolutionError as e:
                errors[index] = self.error_handler.describe(hostname, e)
                apexes.append(None)
                continue

            apexes.append(apex)
            groups.setdefault(apex, []).append(index)

        self.logger.info(f"{len(hostnames)} 个主机名归入 {len(groups)} 个可注册域名，{len(errors)} 个无法解析")

        return ApexGrouping(apexes=apexes, groups=groups, errors=errors)
