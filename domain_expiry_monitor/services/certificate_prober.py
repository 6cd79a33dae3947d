"""
TLS证书探测服务
"""
import select
import socket
import time
from datetime import datetime
from typing import List, Optional
import logging

from cryptography import x509
from OpenSSL import SSL

from ..interfaces import CertificateProberInterface
from ..models import CertificateRecord, EmptyCertificateChainError, LookupContext
from .error_handler import ErrorHandler


class CertificateProber(CertificateProberInterface):
    """TLS证书探测器实现"""

    def __init__(self, timeout: float = 3.0, port: int = 443, error_handler: Optional[ErrorHandler] = None):
        """
        初始化证书探测器

        Args:
            timeout: 连接和握手超时时间（秒）
            port: TLS端口，默认443
            error_handler: 错误处理器
        """
        self.timeout = timeout
        self.port = port
        self.logger = logging.getLogger(__name__)
        self.error_handler = error_handler or ErrorHandler()

    def probe(self, hostname: str, context: Optional[LookupContext] = None) -> CertificateRecord:
        """
        探测单个主机名的证书链

        连接失败、握手失败或证书链为空都作为错误记录返回，不重试。

        Args:
            hostname: 主机名
            context: 请求取消上下文

        Returns:
            CertificateRecord: 证书链中最早的过期时间或错误
        """
        context = context or LookupContext()

        try:
            context.raise_if_cancelled()

            certificates = self._get_peer_certificates(hostname, context)
            not_after = self._earliest_not_after(certificates)

            self.logger.debug(f"{hostname} 证书链共 {len(certificates)} 张，最早过期时间: {not_after.isoformat()}")
            return CertificateRecord(not_after=not_after)

        except Exception as e:
            return CertificateRecord(error=self.error_handler.describe(hostname, e))

    def _get_peer_certificates(self, hostname: str, context: LookupContext) -> List[x509.Certificate]:
        """
        建立TLS连接并读取完整的对端证书链

        Args:
            hostname: 主机名
            context: 请求取消上下文

        Returns:
            List[x509.Certificate]: 证书链（叶子证书在前）

        Raises:
            EmptyCertificateChainError: 对端未提供证书
        """
        if not hostname or not hostname.strip():
            raise ValueError("主机名为空")

        timeout = context.bounded_timeout(self.timeout)

        # 只关心过期时间，不校验信任链
        tls_context = SSL.Context(SSL.TLS_CLIENT_METHOD)
        tls_context.set_verify(SSL.VERIFY_NONE)

        with socket.create_connection((hostname, self.port), timeout=timeout) as sock:
            conn = SSL.Connection(tls_context, sock)
            conn.set_tlsext_host_name(hostname.encode())
            conn.set_connect_state()

            self._do_handshake(conn, sock, context)

            chain = conn.get_peer_cert_chain() or []

        if not chain:
            raise EmptyCertificateChainError(f"握手成功但 {hostname} 未提供证书链")

        return [cert.to_cryptography() for cert in chain]

    def _do_handshake(self, conn: SSL.Connection, sock: socket.socket, context: LookupContext) -> None:
        """
        在超时限制内完成TLS握手

        带超时的套接字在 OpenSSL 看来是非阻塞的，需要等待可读/可写后重试。
        """
        deadline = time.monotonic() + context.bounded_timeout(self.timeout)

        while True:
            try:
                conn.do_handshake()
                return
            except SSL.WantReadError:
                wait_read, wait_write = [sock], []
            except SSL.WantWriteError:
                wait_read, wait_write = [], [sock]

            context.raise_if_cancelled()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise socket.timeout("TLS握手超时")

            readable, writable, _ = select.select(wait_read, wait_write, [], remaining)
            if not readable and not writable:
                raise socket.timeout("TLS握手超时")

    def _earliest_not_after(self, certificates: List[x509.Certificate]) -> datetime:
        """
        计算证书链中最早的过期时间

        中间证书过期同样会导致信任失效，因此取整条链的最小值。

        Args:
            certificates: 证书链

        Returns:
            datetime: 最早的过期时间（UTC）
        """
        if not certificates:
            raise EmptyCertificateChainError("证书链为空")

        return min(cert.not_valid_after_utc for cert in certificates)
