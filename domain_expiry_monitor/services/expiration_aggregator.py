"""
过期信息汇总服务
"""
from concurrent.futures import Future, ThreadPoolExecutor, wait
from functools import lru_cache
from typing import Dict, List, Optional, Sequence
import logging

from ..interfaces import (
    ApexDeduplicatorInterface,
    CertificateProberInterface,
    RegistrationExtractorInterface,
)
from ..models import (
    CertificateRecord,
    ExpirationReport,
    LookupCancelledError,
    LookupContext,
    RegistrationRecord,
)
from .apex_deduplicator import ApexDeduplicator
from .certificate_prober import CertificateProber
from .error_handler import ErrorHandler
from .registration_extractor import RegistrationExpirationExtractor


class ExpirationAggregator:
    """
    过期信息汇总器

    每个主机名探测一次证书，每个可注册域名查询一次 whois，
    结果按输入位置写回，输出顺序与输入一致。
    """

    def __init__(self,
                 prober: Optional[CertificateProberInterface] = None,
                 extractor: Optional[RegistrationExtractorInterface] = None,
                 deduplicator: Optional[ApexDeduplicatorInterface] = None,
                 max_workers: int = 10,
                 error_handler: Optional[ErrorHandler] = None):
        """
        初始化汇总器

        Args:
            prober: 证书探测器
            extractor: 注册过期时间提取器
            deduplicator: 可注册域名分组器
            max_workers: 并发查询的最大线程数
            error_handler: 错误处理器
        """
        self.error_handler = error_handler or ErrorHandler()
        self.prober = prober or CertificateProber(error_handler=self.error_handler)
        self.extractor = extractor or RegistrationExpirationExtractor(error_handler=self.error_handler)
        self.deduplicator = deduplicator or ApexDeduplicator(error_handler=self.error_handler)
        self.max_workers = max(1, max_workers)
        self.logger = logging.getLogger(__name__)

    def aggregate(self, hostnames: Sequence[str], context: Optional[LookupContext] = None) -> List[ExpirationReport]:
        """
        汇总一批主机名的证书和注册过期信息

        单个主机名的失败只体现在对应记录的 error 字段中，整个批次总是返回
        与输入等长、同序的结果。超过截止时间仍未完成的查询记为已取消。

        Args:
            hostnames: 主机名列表
            context: 请求取消上下文

        Returns:
            List[ExpirationReport]: 每个主机名一条报告
        """
        hostnames = list(hostnames)
        context = context or LookupContext()

        if not hostnames:
            return []

        grouping = self.deduplicator.group_by_apex(hostnames)

        certificates: List[Optional[CertificateRecord]] = [None] * len(hostnames)
        registrations: Dict[str, Optional[RegistrationRecord]] = {apex: None for apex in grouping.groups}

        self.logger.info(
            f"开始查询: {len(hostnames)} 个证书, {len(registrations)} 个注册信息，并发数 {self.max_workers}"
        )

        executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="expiration-lookup")
        try:
            certificate_futures: Dict[Future, int] = {
                executor.submit(self.prober.probe, hostname, context): index
                for index, hostname in enumerate(hostnames)
            }
            registration_futures: Dict[Future, str] = {
                executor.submit(self.extractor.extract, apex, context): apex
                for apex in grouping.groups
            }

            done, not_done = wait(
                list(certificate_futures) + list(registration_futures),
                timeout=context.remaining()
            )

            if not_done:
                self.logger.warning(f"超过请求截止时间，{len(not_done)} 个查询未完成，取消剩余查询")
                context.cancel()
                for future in not_done:
                    future.cancel()

            for future in done:
                if future in certificate_futures:
                    index = certificate_futures[future]
                    certificates[index] = self._certificate_result(future, hostnames[index])
                else:
                    apex = registration_futures[future]
                    registrations[apex] = self._registration_result(future, apex)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        reports = []
        for index, hostname in enumerate(hostnames):
            certificate = certificates[index]
            if certificate is None:
                certificate = CertificateRecord(error=self._cancelled(hostname))

            apex = grouping.apexes[index]
            if apex is None:
                # 没有可注册域名时不查询 whois，注册记录留空
                registration = RegistrationRecord()
            else:
                registration = registrations[apex]
                if registration is None:
                    registration = RegistrationRecord(error=self._cancelled(apex))
                    registrations[apex] = registration

            reports.append(ExpirationReport(
                hostname=hostname,
                apex_domain=apex,
                certificate=certificate,
                registration=registration
            ))

        return reports

    def _certificate_result(self, future: Future, hostname: str) -> CertificateRecord:
        error = future.exception()
        if error is not None:
            return CertificateRecord(error=self.error_handler.describe(hostname, error))
        return future.result()

    def _registration_result(self, future: Future, apex: str) -> RegistrationRecord:
        error = future.exception()
        if error is not None:
            return RegistrationRecord(error=self.error_handler.describe(apex, error))
        return future.result()

    def _cancelled(self, target: str):
        return self.error_handler.describe(target, LookupCancelledError("查询超过请求截止时间，已取消"))


@lru_cache(maxsize=None)
def default_aggregator() -> ExpirationAggregator:
    """进程内共享的默认汇总器（公共后缀数据只加载一次）"""
    return ExpirationAggregator()


def compute_expirations(hostnames: Sequence[str], context: Optional[LookupContext] = None) -> List[ExpirationReport]:
    """
    计算一批主机名的过期信息，供展示层调用

    Args:
        hostnames: 主机名列表
        context: 请求取消上下文

    Returns:
        List[ExpirationReport]: 与输入等长、同序的报告列表
    """
    return default_aggregator().aggregate(hostnames, context)
