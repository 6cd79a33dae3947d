"""
集成测试
"""
import os
from unittest.mock import patch
from datetime import datetime, timezone, timedelta

import boto3
from moto import mock_aws
from OpenSSL import SSL

from domain_expiry_monitor.interfaces import ApexResolverInterface, RegistryQueryInterface
from domain_expiry_monitor.lambda_handler import ExpirationMonitor, lambda_handler
from domain_expiry_monitor.services.apex_deduplicator import ApexDeduplicator
from domain_expiry_monitor.services.certificate_prober import CertificateProber
from domain_expiry_monitor.services.config import MonitorConfig
from domain_expiry_monitor.services.expiration_aggregator import ExpirationAggregator
from domain_expiry_monitor.services.registration_extractor import RegistrationExpirationExtractor
from domain_expiry_monitor.services.threshold_evaluator import classify, cutoff_for
from domain_expiry_monitor.models import BatchStatus, ErrorKind, ReportStatus


FAR_FUTURE = datetime.now(timezone.utc).replace(microsecond=0) + timedelta(days=800)


class ExampleResolver(ApexResolverInterface):
    """.example 不在公共后缀列表中，测试中直接把主机名当作可注册域名"""

    def apex(self, hostname):
        return hostname


class RegistryStub(RegistryQueryInterface):
    """返回注册局风格文本的查询实现"""

    def __init__(self):
        self.calls = []

    def query(self, domain, context=None):
        self.calls.append(domain)
        return (
            f"Domain Name: {domain.upper()}\n"
            f"Creation Date: 2001-01-01T00:00:00Z\n"
            f"Registry Expiry Date: {FAR_FUTURE.strftime('%Y-%m-%dT%H:%M:%SZ')}\n"
        )


def fake_peer_chain(hostname):
    """good.example 返回一条正常的证书链，其他主机握手失败"""
    if hostname != "good.example":
        raise SSL.Error([("SSL routines", "", "sslv3 alert handshake failure")])

    certificates = []
    for days in (400, 2000):
        cert = type("Cert", (), {})()
        cert.not_valid_after_utc = FAR_FUTURE - timedelta(days=800) + timedelta(days=days)
        certificates.append(cert)
    return certificates


class TestEndToEnd:
    """端到端测试"""

    def setup_method(self):
        """测试前准备"""
        self.registry = RegistryStub()
        self.prober = CertificateProber()
        self.aggregator = ExpirationAggregator(
            prober=self.prober,
            extractor=RegistrationExpirationExtractor(registry_query=self.registry),
            deduplicator=ApexDeduplicator(resolver=ExampleResolver())
        )

    def test_good_and_bad_certificate(self):
        """测试一个正常主机和一个握手失败的主机"""
        with patch.object(CertificateProber, '_get_peer_certificates',
                          side_effect=lambda hostname, context: fake_peer_chain(hostname)):
            reports = self.aggregator.aggregate(["good.example", "badcert.example"])

        classification = classify(reports, cutoff_for())

        assert classification.batch_status == BatchStatus.ERROR
        assert classification.report_statuses == [ReportStatus.HEALTHY, ReportStatus.NOT_HEALTHY]

        good, bad = reports
        assert good.hostname == "good.example"
        assert good.certificate.not_after == FAR_FUTURE - timedelta(days=400)
        assert good.registration.expires == FAR_FUTURE

        assert bad.hostname == "badcert.example"
        assert bad.certificate.not_after is None
        assert bad.certificate.error.kind == ErrorKind.NETWORK
        assert bad.registration.ok

        assert sorted(self.registry.calls) == ["badcert.example", "good.example"]


class TestScheduledIntegration:
    """定时检查与SNS集成测试"""

    @patch.dict(os.environ, {'AWS_DEFAULT_REGION': 'us-east-1'})
    @mock_aws
    def test_scheduled_run_publishes_alert(self):
        """测试定时检查发现异常时通过SNS发送告警"""
        sns = boto3.client('sns', region_name='us-east-1')
        topic_arn = sns.create_topic(Name='expiry-alerts')['TopicArn']

        monitor = ExpirationMonitor(config=MonitorConfig(
            hostnames=('good.example', 'badcert.example'),
            sns_topic_arn=topic_arn
        ))
        monitor.aggregator.extractor = RegistrationExpirationExtractor(registry_query=RegistryStub())
        monitor.aggregator.deduplicator = ApexDeduplicator(resolver=ExampleResolver())

        with patch.object(CertificateProber, '_get_peer_certificates',
                          side_effect=lambda hostname, context: fake_peer_chain(hostname)):
            result = monitor.run_scheduled()

        body = result['body']
        assert result['statusCode'] == 200
        assert body['batch_status'] == 'error'
        assert body['not_healthy_hostnames'] == ['badcert.example']
        assert body['notification_sent'] is True

    @patch.dict(os.environ, {'HOSTNAMES': '', 'SNS_TOPIC_ARN': ''})
    def test_lambda_handler_without_hostnames(self):
        """测试定时事件在未配置主机名时返回错误"""
        response = lambda_handler({'source': 'aws.events'}, None)

        assert response['statusCode'] == 500
        assert response['body']['message'] == 'No host names configured'

    @patch.dict(os.environ, {'HOSTNAMES': ''})
    def test_lambda_handler_index(self):
        """测试 HTTP 根路径"""
        response = lambda_handler({'path': '/'}, None)

        assert response['statusCode'] == 200
        assert response['headers']['Content-Type'] == 'text/plain; charset=utf-8'
