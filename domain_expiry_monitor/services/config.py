"""
配置加载与验证服务
"""
import os
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional
import logging


_DURATION_UNITS = {
    'ns': timedelta(microseconds=0.001),
    'us': timedelta(microseconds=1),
    'µs': timedelta(microseconds=1),
    'ms': timedelta(milliseconds=1),
    's': timedelta(seconds=1),
    'm': timedelta(minutes=1),
    'h': timedelta(hours=1),
    'd': timedelta(days=1),
    'w': timedelta(weeks=1),
    'y': timedelta(days=365),
}

_DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h|d|w|y)')


def parse_duration(text: str) -> timedelta:
    """
    解析时长字符串

    支持 720h、1h30m、90s、500ms 这样的组合写法，以及 30d、2w、1y（365天）。
    允许前导正负号，纯 0 表示零时长。

    Args:
        text: 时长字符串

    Returns:
        timedelta: 时长

    Raises:
        ValueError: 格式无效
    """
    if text is None:
        raise ValueError("时长不能为空")

    value = text.strip()
    if not value:
        raise ValueError("时长不能为空")

    sign = 1
    if value[0] in '+-':
        sign = -1 if value[0] == '-' else 1
        value = value[1:]

    if value == '0':
        return timedelta(0)

    total = timedelta(0)
    position = 0
    while position < len(value):
        match = _DURATION_PART.match(value, position)
        if not match:
            raise ValueError(f"无效的时长: {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position == 0:
        raise ValueError(f"无效的时长: {text!r}")

    return total * sign


def _parse_hostnames(value: str) -> List[str]:
    return [hostname.strip() for hostname in value.split(',') if hostname.strip()]


@dataclass(frozen=True)
class MonitorConfig:
    """监控配置（进程启动时加载一次，之后只读）"""
    hostnames: tuple = ()
    lookahead: timedelta = timedelta(days=30)
    dial_timeout: float = 3.0
    request_timeout: float = 25.0
    max_workers: int = 10
    sns_topic_arn: Optional[str] = None
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> 'MonitorConfig':
        """
        从环境变量加载配置

        Args:
            environ: 环境变量字典，默认 os.environ

        Returns:
            MonitorConfig: 配置

        Raises:
            ValueError: 配置值格式无效
        """
        environ = os.environ if environ is None else environ

        return cls(
            hostnames=tuple(_parse_hostnames(environ.get('HOSTNAMES', ''))),
            lookahead=parse_duration(environ.get('EXPIRY_TTL') or '30d'),
            dial_timeout=float(environ.get('DIAL_TIMEOUT') or 3.0),
            request_timeout=float(environ.get('REQUEST_TIMEOUT') or 25.0),
            max_workers=int(environ.get('MAX_WORKERS') or 10),
            sns_topic_arn=environ.get('SNS_TOPIC_ARN') or None,
            log_level=environ.get('LOG_LEVEL') or 'INFO',
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            'hostnames': ','.join(self.hostnames),
            'lookahead': str(self.lookahead),
            'dial_timeout': self.dial_timeout,
            'request_timeout': self.request_timeout,
            'max_workers': self.max_workers,
            'sns_topic_arn': self.sns_topic_arn or '',
            'log_level': self.log_level,
        }


class ConfigValidator:
    """配置验证器"""

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        """
        初始化配置验证器

        Args:
            environ: 环境变量字典，默认 os.environ
        """
        self.environ = os.environ if environ is None else environ
        self.logger = logging.getLogger(__name__)

        # 可选的环境变量
        self.optional_env_vars = {
            'HOSTNAMES': '定时检查的主机名列表（逗号分隔）',
            'EXPIRY_TTL': '即将过期判定提前量',
            'DIAL_TIMEOUT': 'TLS连接超时（秒）',
            'REQUEST_TIMEOUT': '单次请求截止时间（秒）',
            'MAX_WORKERS': '并发查询线程数',
            'SNS_TOPIC_ARN': 'SNS主题ARN',
            'LOG_LEVEL': '日志级别'
        }

        self.hostname_pattern = re.compile(
            r'^(?:[a-zA-Z0-9_](?:[a-zA-Z0-9_-]{0,61}[a-zA-Z0-9])?\.)+[a-zA-Z0-9-]{2,63}\.?$'
        )

    def validate_all_configurations(self) -> Dict[str, Any]:
        """
        验证所有配置

        Returns:
            Dict[str, Any]: 验证结果
        """
        validation_result = {
            'is_valid': True,
            'errors': [],
            'warnings': [],
            'configurations': {}
        }

        for name, validate in (
            ('hostnames', self.validate_hostnames_configuration),
            ('timing', self.validate_timing_configuration),
            ('sns', self.validate_sns_configuration),
        ):
            result = validate()
            validation_result['configurations'][name] = result

            if not result['is_valid']:
                validation_result['is_valid'] = False
                validation_result['errors'].extend(result['errors'])

            validation_result['warnings'].extend(result['warnings'])

        return validation_result

    def validate_hostnames_configuration(self) -> Dict[str, Any]:
        """
        验证主机名配置

        Returns:
            Dict[str, Any]: 主机名配置验证结果
        """
        result = {
            'is_valid': True,
            'errors': [],
            'warnings': [],
            'total_hostnames': 0,
            'valid_hostnames': [],
            'invalid_hostnames': []
        }

        hostnames = _parse_hostnames(self.environ.get('HOSTNAMES', ''))
        result['total_hostnames'] = len(hostnames)

        if not hostnames:
            result['warnings'].append("HOSTNAMES环境变量为空，定时检查将不会执行")
            return result

        for hostname in hostnames:
            if self.hostname_pattern.match(hostname):
                result['valid_hostnames'].append(hostname)
            else:
                result['invalid_hostnames'].append(hostname)
                result['warnings'].append(f"主机名格式可疑: {hostname}")

        return result

    def validate_timing_configuration(self) -> Dict[str, Any]:
        """
        验证提前量、超时和并发配置

        Returns:
            Dict[str, Any]: 验证结果
        """
        result = {
            'is_valid': True,
            'errors': [],
            'warnings': []
        }

        ttl = self.environ.get('EXPIRY_TTL')
        if ttl:
            try:
                parse_duration(ttl)
            except ValueError as e:
                result['is_valid'] = False
                result['errors'].append(f"EXPIRY_TTL格式无效: {e}")

        for var_name, minimum, maximum in (
            ('DIAL_TIMEOUT', 0.5, 30.0),
            ('REQUEST_TIMEOUT', 1.0, 900.0),
        ):
            value = self.environ.get(var_name)
            if not value:
                continue
            try:
                seconds = float(value)
            except ValueError:
                result['is_valid'] = False
                result['errors'].append(f"{var_name}格式无效: {value}")
                continue

            if seconds <= 0:
                result['is_valid'] = False
                result['errors'].append(f"{var_name}必须大于0: {value}")
            elif seconds < minimum:
                result['warnings'].append(f"{var_name}过短: {seconds}秒，建议至少{minimum}秒")
            elif seconds > maximum:
                result['warnings'].append(f"{var_name}过长: {seconds}秒")

        workers = self.environ.get('MAX_WORKERS')
        if workers:
            try:
                count = int(workers)
                if count < 1:
                    result['is_valid'] = False
                    result['errors'].append(f"MAX_WORKERS必须至少为1: {workers}")
                elif count > 100:
                    result['warnings'].append(f"MAX_WORKERS过大: {count}")
            except ValueError:
                result['is_valid'] = False
                result['errors'].append(f"MAX_WORKERS格式无效: {workers}")

        return result

    def validate_sns_configuration(self) -> Dict[str, Any]:
        """
        验证SNS配置（可选，未配置时只告警）

        Returns:
            Dict[str, Any]: SNS配置验证结果
        """
        result = {
            'is_valid': True,
            'errors': [],
            'warnings': [],
            'topic_arn': None,
            'arn_format_valid': False
        }

        topic_arn = self.environ.get('SNS_TOPIC_ARN')

        if not topic_arn:
            result['warnings'].append("SNS_TOPIC_ARN环境变量未设置，定时检查不会发送告警")
            return result

        result['topic_arn'] = topic_arn

        arn_pattern = r'^arn:aws:sns:[a-z0-9-]+:\d{12}:[a-zA-Z0-9_-]+$'
        if re.match(arn_pattern, topic_arn):
            result['arn_format_valid'] = True
        else:
            result['is_valid'] = False
            result['errors'].append(f"SNS主题ARN格式无效: {topic_arn}")

        return result

    def get_configuration_summary(self) -> str:
        """
        获取配置摘要

        Returns:
            str: 配置摘要文本
        """
        validation_result = self.validate_all_configurations()

        lines = [
            "配置验证摘要",
            "=" * 30
        ]

        if validation_result['is_valid']:
            lines.append("✅ 配置验证通过")
        else:
            lines.append("❌ 配置验证失败")

        if validation_result['errors']:
            lines.append("\n错误:")
            for error in validation_result['errors']:
                lines.append(f"  • {error}")

        if validation_result['warnings']:
            lines.append("\n警告:")
            for warning in validation_result['warnings']:
                lines.append(f"  • {warning}")

        hostnames_config = validation_result['configurations'].get('hostnames', {})
        if hostnames_config.get('valid_hostnames'):
            lines.append(f"\n有效主机名数量: {len(hostnames_config['valid_hostnames'])}")

        return "\n".join(lines)
