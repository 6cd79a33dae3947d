"""
过期阈值评估服务
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence

from ..interfaces import ThresholdEvaluatorInterface
from ..models import BatchStatus, Classification, ExpirationReport, ReportStatus


DEFAULT_LOOKAHEAD = timedelta(days=30)


def cutoff_for(lookahead: timedelta = DEFAULT_LOOKAHEAD, now: Optional[datetime] = None) -> datetime:
    """
    计算判定阈值：当前时间减去提前量

    Args:
        lookahead: 提前量，默认30天
        now: 当前时间，None 时取 UTC 当前时间

    Returns:
        datetime: 早于该时间的过期日期被视为即将过期
    """
    now = now or datetime.now(timezone.utc)
    return now - lookahead


class ThresholdEvaluator(ThresholdEvaluatorInterface):
    """阈值评估器"""

    def is_expiring_soon(self, report: ExpirationReport, cutoff: datetime) -> bool:
        """
        判断报告中是否有日期严格早于阈值（不考虑错误）

        没有错误但也没有日期的记录（例如无法推导可注册域名时的注册记录）
        视为早于任何阈值。

        Args:
            report: 过期报告
            cutoff: 阈值时间

        Returns:
            bool: 是否即将过期
        """
        certificate = report.certificate
        if certificate.error is None and (certificate.not_after is None or certificate.not_after < cutoff):
            return True

        registration = report.registration
        if registration.error is None and (registration.expires is None or registration.expires < cutoff):
            return True

        return False

    def evaluate_report(self, report: ExpirationReport, cutoff: datetime) -> ReportStatus:
        """
        评估单条报告

        证书或注册信息有错误、或任一日期缺失或严格早于阈值时为不健康。
        恰好等于阈值视为健康。

        Args:
            report: 过期报告
            cutoff: 阈值时间

        Returns:
            ReportStatus: 健康状态
        """
        if report.has_error or self.is_expiring_soon(report, cutoff):
            return ReportStatus.NOT_HEALTHY

        return ReportStatus.HEALTHY

    def evaluate_batch(self, reports: Sequence[ExpirationReport], cutoff: datetime) -> BatchStatus:
        """
        评估整个批次，错误优先于即将过期

        Args:
            reports: 报告列表
            cutoff: 阈值时间

        Returns:
            BatchStatus: 批次状态
        """
        has_expiration_soon = False

        for report in reports:
            if report.has_error:
                return BatchStatus.ERROR
            if self.is_expiring_soon(report, cutoff):
                has_expiration_soon = True

        if has_expiration_soon:
            return BatchStatus.IMMINENT

        return BatchStatus.HEALTHY

    def classify(self, reports: Sequence[ExpirationReport], cutoff: datetime) -> Classification:
        """
        计算逐条状态与批次状态

        Args:
            reports: 报告列表
            cutoff: 阈值时间

        Returns:
            Classification: 分类结果
        """
        return Classification(
            cutoff=cutoff,
            report_statuses=[self.evaluate_report(report, cutoff) for report in reports],
            batch_status=self.evaluate_batch(reports, cutoff)
        )

    def categorize_reports(self, reports: Sequence[ExpirationReport], cutoff: datetime) -> Dict[str, List[ExpirationReport]]:
        """
        对报告进行分类

        Args:
            reports: 报告列表
            cutoff: 阈值时间

        Returns:
            dict: error / expiring_soon / healthy 三类
        """
        categorized: Dict[str, List[ExpirationReport]] = {
            'error': [],
            'expiring_soon': [],
            'healthy': []
        }

        for report in reports:
            if report.has_error:
                categorized['error'].append(report)
            elif self.evaluate_report(report, cutoff) == ReportStatus.NOT_HEALTHY:
                categorized['expiring_soon'].append(report)
            else:
                categorized['healthy'].append(report)

        return categorized


def classify(reports: Sequence[ExpirationReport], cutoff: datetime) -> Classification:
    """
    对已计算的报告分类，供展示层调用

    Args:
        reports: 报告列表
        cutoff: 阈值时间

    Returns:
        Classification: 逐条状态与批次状态
    """
    return ThresholdEvaluator().classify(reports, cutoff)
