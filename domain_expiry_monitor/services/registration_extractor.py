"""
域名注册过期时间提取服务

各注册局的 whois 输出没有统一格式，这里按关键字定位行，
再从该行的每个字符位置开始尝试宽松地解析日期，第一个成功的结果即为答案。
"""
from datetime import datetime, timezone
from typing import Callable, Optional
import logging

import whois
from dateutil import parser as date_parser

from ..interfaces import RegistrationExtractorInterface, RegistryQueryInterface
from ..models import ExtractionError, LookupContext, RegistrationRecord
from .error_handler import ErrorHandler


# 常见注册局/语言中出现在过期日期前的字段关键字（小写）
EXPIRATION_KEYWORDS = (
    "expiry",
    "expiration",
    "expires",
    "registered through",
    "expired",
    "expire",
    "domain_datebilleduntil",
    "paid-till",
    "renewal date",
    "fecha de vencimiento",
)


def parse_lenient(text: str) -> Optional[datetime]:
    """
    宽松解析日期，失败返回 None

    Args:
        text: 待解析的字符串

    Returns:
        Optional[datetime]: 解析出的UTC时间
    """
    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return None

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def find_expiration_date(text: str,
                         keywords=EXPIRATION_KEYWORDS,
                         parse: Callable[[str], Optional[datetime]] = parse_lenient) -> Optional[datetime]:
    """
    在 whois 文本中查找过期日期

    按行顺序扫描，行（忽略大小写）包含任一关键字时，从原始行的每个字符位置
    开始尝试解析，第一个解析成功的日期立即返回。

    Args:
        text: whois 原始文本
        keywords: 关键字列表
        parse: 日期解析函数

    Returns:
        Optional[datetime]: 找到的日期，找不到返回 None
    """
    for line in text.splitlines():
        lowered = line.lower()
        if not any(keyword in lowered for keyword in keywords):
            continue

        for offset in range(len(line)):
            possible_date = parse(line[offset:])
            if possible_date is not None:
                return possible_date

    return None


class WhoisQuery(RegistryQueryInterface):
    """基于 python-whois 的注册信息查询"""

    def __init__(self, timeout: float = 10.0):
        """
        初始化查询

        Args:
            timeout: 单次 whois 套接字超时（秒），受请求剩余时间限制
        """
        self.timeout = timeout

    def query(self, domain: str, context: Optional[LookupContext] = None) -> str:
        context = context or LookupContext()
        context.raise_if_cancelled()

        # python-whois 只接受整数秒
        timeout = max(1, int(context.bounded_timeout(self.timeout)))

        entry = whois.whois(domain, timeout=timeout, ignore_socket_errors=False)
        return entry.text or ""


class RegistrationExpirationExtractor(RegistrationExtractorInterface):
    """注册过期时间提取器实现"""

    def __init__(self, registry_query: Optional[RegistryQueryInterface] = None,
                 error_handler: Optional[ErrorHandler] = None):
        """
        初始化提取器

        Args:
            registry_query: whois 查询实现，默认使用 WhoisQuery
            error_handler: 错误处理器
        """
        self.registry_query = registry_query or WhoisQuery()
        self.error_handler = error_handler or ErrorHandler()
        self.logger = logging.getLogger(__name__)

    def extract(self, apex_domain: str, context: Optional[LookupContext] = None) -> RegistrationRecord:
        """
        查询并提取可注册域名的过期时间，不重试

        Args:
            apex_domain: 可注册域名
            context: 请求取消上下文

        Returns:
            RegistrationRecord: 过期时间或错误
        """
        context = context or LookupContext()

        try:
            context.raise_if_cancelled()
            text = self.registry_query.query(apex_domain, context)

            expires = find_expiration_date(text)
            if expires is None:
                # 原始文本只用于排查，不返回给调用方
                self.logger.warning(f"无法从 {apex_domain} 的whois记录中确定过期日期: {text!r}")
                raise ExtractionError("无法从whois记录中确定过期日期")

            self.logger.debug(f"{apex_domain} 注册过期时间: {expires.isoformat()}")
            return RegistrationRecord(expires=expires)

        except Exception as e:
            return RegistrationRecord(error=self.error_handler.describe(apex_domain, e))
