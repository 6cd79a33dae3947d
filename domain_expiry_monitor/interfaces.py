"""
服务接口定义
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from .models import (
    ApexGrouping,
    BatchStatus,
    CertificateRecord,
    Classification,
    ExpirationReport,
    LookupContext,
    RegistrationRecord,
    ReportStatus,
)


class CertificateProberInterface(ABC):
    """证书探测器接口"""

    @abstractmethod
    def probe(self, hostname: str, context: Optional[LookupContext] = None) -> CertificateRecord:
        """握手并返回证书链中最早的过期时间"""
        pass


class RegistryQueryInterface(ABC):
    """whois 文本查询接口"""

    @abstractmethod
    def query(self, domain: str, context: Optional[LookupContext] = None) -> str:
        """返回原始 whois 响应文本"""
        pass


class RegistrationExtractorInterface(ABC):
    """注册过期时间提取器接口"""

    @abstractmethod
    def extract(self, apex_domain: str, context: Optional[LookupContext] = None) -> RegistrationRecord:
        """从 whois 文本中提取过期时间"""
        pass


class ApexResolverInterface(ABC):
    """可注册域名解析接口"""

    @abstractmethod
    def apex(self, hostname: str) -> str:
        """返回主机名的可注册域名，失败时抛出 ApexResolutionError"""
        pass


class ApexDeduplicatorInterface(ABC):
    """可注册域名分组接口"""

    @abstractmethod
    def group_by_apex(self, hostnames: Sequence[str]) -> ApexGrouping:
        """按可注册域名对主机名分组"""
        pass


class ThresholdEvaluatorInterface(ABC):
    """阈值评估器接口"""

    @abstractmethod
    def evaluate_report(self, report: ExpirationReport, cutoff: datetime) -> ReportStatus:
        """评估单条报告"""
        pass

    @abstractmethod
    def evaluate_batch(self, reports: Sequence[ExpirationReport], cutoff: datetime) -> BatchStatus:
        """评估整个批次"""
        pass


class NotificationServiceInterface(ABC):
    """通知服务接口"""

    @abstractmethod
    def send_expiration_alert(self, reports: List[ExpirationReport], classification: Classification) -> bool:
        """发送过期告警"""
        pass

    @abstractmethod
    def format_notification_content(self, reports: List[ExpirationReport], classification: Classification) -> str:
        """格式化通知内容"""
        pass


class LoggerServiceInterface(ABC):
    """日志服务接口"""

    @abstractmethod
    def log_check_start(self, hostname_count: int):
        """记录检查开始"""
        pass

    @abstractmethod
    def log_report(self, report: ExpirationReport, status: ReportStatus):
        """记录单条报告"""
        pass

    @abstractmethod
    def log_error(self, hostname: str, error: Exception):
        """记录错误信息"""
        pass
