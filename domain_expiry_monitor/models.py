"""
数据模型定义
"""
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional


class ErrorKind(str, Enum):
    """错误类型"""
    NETWORK = "network"
    PROTOCOL = "protocol"
    EXTRACTION = "extraction"
    RESOLUTION = "resolution"
    CANCELLED = "cancelled"


class ReportStatus(str, Enum):
    """单条报告的健康状态"""
    HEALTHY = "healthy"
    NOT_HEALTHY = "not-healthy"


class BatchStatus(str, Enum):
    """批次整体状态"""
    HEALTHY = "healthy"
    IMMINENT = "imminent"
    ERROR = "error"


class ExpirationMonitorError(Exception):
    """服务内部异常基类"""
    kind = ErrorKind.NETWORK


class EmptyCertificateChainError(ExpirationMonitorError):
    """握手成功但对端未提供证书链"""
    kind = ErrorKind.PROTOCOL


class ExtractionError(ExpirationMonitorError):
    """whois 响应中找不到可解析的过期日期"""
    kind = ErrorKind.EXTRACTION


class ApexResolutionError(ExpirationMonitorError):
    """无法从主机名推导出可注册域名"""
    kind = ErrorKind.RESOLUTION


class LookupCancelledError(ExpirationMonitorError):
    """查询被取消或超过请求截止时间"""
    kind = ErrorKind.CANCELLED


@dataclass(frozen=True)
class RecordError:
    """附加在记录上的错误信息"""
    kind: ErrorKind
    message: str
    error_type: str = "Exception"
    suggested_action: str = ""

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class CertificateRecord:
    """证书链中最早的过期时间"""
    not_after: Optional[datetime] = None
    error: Optional[RecordError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.not_after is not None


@dataclass(frozen=True)
class RegistrationRecord:
    """域名注册过期时间，同一可注册域名下的主机共享一条"""
    expires: Optional[datetime] = None
    error: Optional[RecordError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.expires is not None


@dataclass(frozen=True)
class ExpirationReport:
    """单个主机名的检查结果"""
    hostname: str
    certificate: CertificateRecord
    registration: RegistrationRecord
    apex_domain: Optional[str] = None

    @property
    def has_error(self) -> bool:
        return self.certificate.error is not None or self.registration.error is not None


@dataclass
class Classification:
    """分类结果：逐条状态与批次状态"""
    cutoff: datetime
    report_statuses: List[ReportStatus]
    batch_status: BatchStatus

    @property
    def healthy_count(self) -> int:
        return sum(1 for status in self.report_statuses if status == ReportStatus.HEALTHY)

    @property
    def not_healthy_count(self) -> int:
        return len(self.report_statuses) - self.healthy_count


@dataclass
class ApexGrouping:
    """按可注册域名分组的结果"""
    apexes: List[Optional[str]]
    groups: Dict[str, List[int]]
    errors: Dict[int, RecordError] = field(default_factory=dict)

    @property
    def unique_apexes(self) -> List[str]:
        return list(self.groups.keys())


class LookupContext:
    """
    请求级别的取消上下文

    持有一个可选的截止时间（基于 time.monotonic）和一个取消事件，
    所有网络查询在开始前检查它，并用 remaining() 限制超时。
    """

    def __init__(self, timeout: Optional[float] = None):
        """
        初始化取消上下文

        Args:
            timeout: 从现在起的超时秒数，None 表示不限
        """
        self.deadline = time.monotonic() + timeout if timeout is not None else None
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """取消所有尚未完成的查询"""
        self._cancelled.set()

    @property
    def is_cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def remaining(self) -> Optional[float]:
        """距截止时间的剩余秒数，没有截止时间时返回 None"""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def bounded_timeout(self, timeout: float) -> float:
        """返回 timeout 与剩余时间中较小者"""
        remaining = self.remaining()
        if remaining is None:
            return timeout
        return min(timeout, remaining)

    def raise_if_cancelled(self) -> None:
        if self.is_cancelled:
            raise LookupCancelledError("查询已取消或超过请求截止时间")
