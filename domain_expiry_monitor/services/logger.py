"""
日志服务
"""
import os
import logging
import traceback
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from ..interfaces import LoggerServiceInterface
from ..models import ExpirationReport, ReportStatus


def _format_time(value: Optional[datetime]) -> str:
    return value.isoformat() if value else "-"


class LoggerService(LoggerServiceInterface):
    """日志服务实现"""

    def __init__(self, logger_name: str = "domain_expiry_monitor", log_level: Optional[str] = None):
        """
        初始化日志服务

        Args:
            logger_name: 日志器名称
            log_level: 日志级别，如果为None则从环境变量读取
        """
        self.logger_name = logger_name
        self.log_level = log_level or os.getenv('LOG_LEVEL', 'INFO')

        self.logger = logging.getLogger(logger_name)
        self._configure_logger()

        self.execution_stats = self._empty_stats()

    def _empty_stats(self) -> Dict[str, Any]:
        return {
            'start_time': None,
            'end_time': None,
            'total_hostnames': 0,
            'healthy': 0,
            'not_healthy': 0,
            'errors': []
        }

    def _configure_logger(self):
        """配置日志器"""
        level = getattr(logging, self.log_level.upper(), logging.INFO)
        self.logger.setLevel(level)

        # 避免重复添加处理器
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(level)

            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            handler.setFormatter(formatter)

            self.logger.addHandler(handler)

        # 防止日志传播到根日志器
        self.logger.propagate = False

    def log_check_start(self, hostname_count: int):
        """
        记录检查开始

        Args:
            hostname_count: 要检查的主机名数量
        """
        self.execution_stats['start_time'] = datetime.now(timezone.utc)
        self.execution_stats['total_hostnames'] = hostname_count

        self.logger.info(f"开始过期检查，共 {hostname_count} 个主机名")
        self.logger.info(f"检查开始时间: {self.execution_stats['start_time'].isoformat()}")

    def log_report(self, report: ExpirationReport, status: ReportStatus):
        """
        记录单条报告

        Args:
            report: 过期报告
            status: 报告的健康状态
        """
        certificate = report.certificate
        registration = report.registration

        if status == ReportStatus.HEALTHY:
            self.execution_stats['healthy'] += 1
            self.logger.info(
                f"状态正常 - 主机: {report.hostname}, "
                f"证书过期: {_format_time(certificate.not_after)}, "
                f"域名: {report.apex_domain}, "
                f"注册过期: {_format_time(registration.expires)}"
            )
            return

        self.execution_stats['not_healthy'] += 1

        if report.has_error:
            for axis, error in (('证书', certificate.error), ('注册信息', registration.error)):
                if error is not None:
                    self.execution_stats['errors'].append({
                        'hostname': report.hostname,
                        'axis': axis,
                        'error_kind': error.kind.value,
                        'error_message': error.message
                    })
                    self.logger.error(
                        f"{axis}检查失败 - 主机: {report.hostname}, "
                        f"类型: {error.kind.value}, 错误: {error.message}"
                    )
        else:
            self.logger.warning(
                f"即将过期 - 主机: {report.hostname}, "
                f"证书过期: {_format_time(certificate.not_after)}, "
                f"域名: {report.apex_domain}, "
                f"注册过期: {_format_time(registration.expires)}"
            )

    def log_error(self, hostname: str, error: Exception):
        """
        记录错误信息

        Args:
            hostname: 主机名
            error: 异常对象
        """
        self.execution_stats['errors'].append({
            'hostname': hostname,
            'axis': None,
            'error_kind': type(error).__name__,
            'error_message': str(error)
        })

        self.logger.error(f"{hostname} 检查时发生错误: {type(error).__name__}: {str(error)}")
        self.logger.debug(f"{hostname} 错误堆栈跟踪:\n{traceback.format_exc()}")

    def log_check_end(self):
        """记录检查结束"""
        self.execution_stats['end_time'] = datetime.now(timezone.utc)

        self.logger.info("过期检查完成")
        self.logger.info(f"检查结束时间: {self.execution_stats['end_time'].isoformat()}")
        self.logger.info(f"总执行时间: {self._duration():.2f} 秒")
        self.logger.info(
            f"检查统计: 总计 {self.execution_stats['total_hostnames']} 个主机名, "
            f"正常 {self.execution_stats['healthy']} 个, "
            f"异常 {self.execution_stats['not_healthy']} 个"
        )

    def log_notification_sent(self, notification_type: str, report_count: int, success: bool):
        """
        记录通知发送状态

        Args:
            notification_type: 通知类型（如 "SNS"）
            report_count: 通知中包含的报告数量
            success: 是否发送成功
        """
        if success:
            self.logger.info(f"{notification_type} 通知发送成功，报告数量: {report_count}")
        else:
            self.logger.error(f"{notification_type} 通知发送失败，报告数量: {report_count}")

    def log_configuration_info(self, config: Dict[str, Any]):
        """
        记录配置信息

        Args:
            config: 配置信息字典
        """
        safe_config = self._sanitize_config(config)

        self.logger.info("系统配置信息:")
        for key, value in safe_config.items():
            self.logger.info(f"  {key}: {value}")

    def _sanitize_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        清理配置信息中的敏感数据

        Args:
            config: 原始配置

        Returns:
            Dict[str, Any]: 清理后的配置
        """
        sensitive_suffixes = ('password', 'secret', 'token', 'credential', 'key', 'arn')

        safe_config = {}
        for key, value in config.items():
            key_lower = key.lower()
            is_sensitive = any(key_lower == s or key_lower.endswith('_' + s) for s in sensitive_suffixes)

            if is_sensitive and isinstance(value, str) and value:
                if value.startswith('arn:'):
                    # ARN类型，只显示前缀和后缀
                    parts = value.split(':')
                    if len(parts) >= 6:
                        safe_value = f"{':'.join(parts[:3])}:***:{parts[-2]}:{parts[-1]}"
                    else:
                        safe_value = "***"
                else:
                    safe_value = value[:3] + "***" if len(value) > 3 else "***"
                safe_config[key] = safe_value
            else:
                safe_config[key] = value

        return safe_config

    def _duration(self) -> float:
        if self.execution_stats['start_time'] and self.execution_stats['end_time']:
            return (self.execution_stats['end_time'] - self.execution_stats['start_time']).total_seconds()
        return 0.0

    def get_execution_summary(self) -> Dict[str, Any]:
        """
        获取执行摘要

        Returns:
            Dict[str, Any]: 执行摘要信息
        """
        stats = self.execution_stats
        total = stats['total_hostnames']

        return {
            'start_time': stats['start_time'].isoformat() if stats['start_time'] else None,
            'end_time': stats['end_time'].isoformat() if stats['end_time'] else None,
            'duration_seconds': self._duration(),
            'total_hostnames': total,
            'healthy': stats['healthy'],
            'not_healthy': stats['not_healthy'],
            'healthy_rate': stats['healthy'] / total if total > 0 else 0,
            'error_count': len(stats['errors']),
            'errors': stats['errors']
        }

    def log_execution_summary(self):
        """记录执行摘要"""
        summary = self.get_execution_summary()

        self.logger.info("=" * 50)
        self.logger.info("执行摘要")
        self.logger.info("=" * 50)
        self.logger.info(f"执行时长: {summary['duration_seconds']:.2f} 秒")
        self.logger.info(f"总主机数: {summary['total_hostnames']}")
        self.logger.info(f"状态正常: {summary['healthy']}")
        self.logger.info(f"状态异常: {summary['not_healthy']}")

        if summary['errors']:
            self.logger.info(f"错误数量: {summary['error_count']}")
            for i, error in enumerate(summary['errors'][:5], 1):  # 只显示前5个错误
                self.logger.info(f"  错误 {i}: {error['hostname']} - {error['error_kind']}: {error['error_message']}")

            if len(summary['errors']) > 5:
                self.logger.info(f"  ... 还有 {len(summary['errors']) - 5} 个错误")

        self.logger.info("=" * 50)

    def reset_stats(self):
        """重置执行统计"""
        self.execution_stats = self._empty_stats()
