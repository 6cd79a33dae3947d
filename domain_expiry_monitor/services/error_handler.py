"""
错误处理服务
"""
import socket
import ssl
from typing import Any, Dict, List, Optional
import logging

from OpenSSL import SSL

from ..models import ErrorKind, ExpirationMonitorError, RecordError


class ErrorHandler:
    """把异常转换为附加在记录上的错误数据"""

    def __init__(self):
        """初始化错误处理器"""
        self.logger = logging.getLogger(__name__)

    def classify_error(self, error: Exception) -> ErrorKind:
        """
        判断异常对应的错误类型

        Args:
            error: 异常对象

        Returns:
            ErrorKind: 错误类型
        """
        if isinstance(error, ExpirationMonitorError):
            return error.kind

        # 套接字、TLS 以及 whois 客户端抛出的异常都按网络错误处理
        return ErrorKind.NETWORK

    def describe(self, target: str, error: Exception, kind: Optional[ErrorKind] = None) -> RecordError:
        """
        处理查询错误并生成错误记录

        Args:
            target: 主机名或可注册域名
            error: 异常对象
            kind: 指定错误类型，None 时自动判断

        Returns:
            RecordError: 错误记录
        """
        kind = kind or self.classify_error(error)
        message = str(error) or type(error).__name__

        record = RecordError(
            kind=kind,
            message=message,
            error_type=type(error).__name__,
            suggested_action=self._get_suggested_action(error, kind),
        )

        if kind in (ErrorKind.NETWORK, ErrorKind.CANCELLED):
            self.logger.warning(f"{target} 查询失败（{kind.value}）: {message}")
        else:
            self.logger.error(f"{target} 查询失败（{kind.value}）: {message}")

        return record

    def _get_suggested_action(self, error: Exception, kind: ErrorKind) -> str:
        """
        获取错误的建议处理方案

        Args:
            error: 异常对象
            kind: 错误类型

        Returns:
            str: 建议的处理方案
        """
        error_message = str(error).lower()

        if kind == ErrorKind.PROTOCOL:
            return "服务器未提供证书链，检查服务器TLS配置"
        elif kind == ErrorKind.EXTRACTION:
            return "whois响应格式无法识别，请人工核对注册信息"
        elif kind == ErrorKind.RESOLUTION:
            return "检查主机名是否正确，是否属于已知公共后缀"
        elif kind == ErrorKind.CANCELLED:
            return "请求超时或被取消，考虑减少单次检查的主机数量"
        elif isinstance(error, socket.timeout):
            return "检查网络连接，考虑增加超时时间"
        elif isinstance(error, socket.gaierror):
            return "检查域名是否正确，DNS服务器是否可用"
        elif isinstance(error, ConnectionRefusedError):
            return "检查目标服务器是否运行，443端口是否开放"
        elif isinstance(error, (ssl.SSLError, SSL.Error)):
            if 'handshake failure' in error_message:
                return "TLS握手失败，检查SSL/TLS版本兼容性"
            return "TLS连接问题，检查服务器SSL配置"
        elif 'network is unreachable' in error_message:
            return "网络不可达，检查网络连接和路由"
        elif 'no route to host' in error_message:
            return "无法路由到主机，检查防火墙和网络配置"
        else:
            return "检查网络连接和服务器状态"

    def get_error_statistics(self, errors: List[RecordError]) -> Dict[str, Any]:
        """
        获取错误统计信息

        Args:
            errors: 错误记录列表

        Returns:
            Dict[str, Any]: 错误统计
        """
        if not errors:
            return {
                'total_errors': 0,
                'error_kinds': {},
                'error_types': {},
                'most_common_error': None,
                'most_common_error_count': 0
            }

        error_kinds: Dict[str, int] = {}
        error_types: Dict[str, int] = {}

        for error in errors:
            error_kinds[error.kind.value] = error_kinds.get(error.kind.value, 0) + 1
            error_types[error.error_type] = error_types.get(error.error_type, 0) + 1

        most_common_error = max(error_types.items(), key=lambda x: x[1])

        return {
            'total_errors': len(errors),
            'error_kinds': error_kinds,
            'error_types': error_types,
            'most_common_error': most_common_error[0],
            'most_common_error_count': most_common_error[1]
        }
