"""
过期阈值评估测试
"""
from datetime import datetime, timezone, timedelta

from domain_expiry_monitor.services.threshold_evaluator import (
    DEFAULT_LOOKAHEAD,
    ThresholdEvaluator,
    classify,
    cutoff_for,
)
from domain_expiry_monitor.models import (
    BatchStatus,
    CertificateRecord,
    ErrorKind,
    ExpirationReport,
    RecordError,
    RegistrationRecord,
    ReportStatus,
)


CUTOFF = datetime(2030, 6, 1, tzinfo=timezone.utc)


def make_report(hostname="www.example.com", not_after=None, expires=None,
                certificate_error=None, registration_error=None):
    """构造测试报告，默认两个日期都远在阈值之后"""
    if not_after is None and certificate_error is None:
        not_after = CUTOFF + timedelta(days=90)
    if expires is None and registration_error is None:
        expires = CUTOFF + timedelta(days=365)

    return ExpirationReport(
        hostname=hostname,
        apex_domain="example.com",
        certificate=CertificateRecord(not_after=not_after, error=certificate_error),
        registration=RegistrationRecord(expires=expires, error=registration_error)
    )


NETWORK_ERROR = RecordError(kind=ErrorKind.NETWORK, message="connection refused")


class TestThresholdEvaluator:
    """阈值评估器测试类"""

    def setup_method(self):
        """测试前准备"""
        self.evaluator = ThresholdEvaluator()

    def test_healthy_report(self):
        """测试日期都在阈值之后"""
        assert self.evaluator.evaluate_report(make_report(), CUTOFF) == ReportStatus.HEALTHY

    def test_date_equal_to_cutoff_is_healthy(self):
        """测试恰好等于阈值时为健康"""
        report = make_report(not_after=CUTOFF, expires=CUTOFF)

        assert self.evaluator.evaluate_report(report, CUTOFF) == ReportStatus.HEALTHY
        assert self.evaluator.evaluate_batch([report], CUTOFF) == BatchStatus.HEALTHY

    def test_certificate_just_before_cutoff(self):
        """测试证书日期比阈值早一微秒"""
        report = make_report(not_after=CUTOFF - timedelta(microseconds=1))

        assert self.evaluator.evaluate_report(report, CUTOFF) == ReportStatus.NOT_HEALTHY
        assert self.evaluator.evaluate_batch([report], CUTOFF) == BatchStatus.IMMINENT

    def test_registration_before_cutoff(self):
        """测试注册日期早于阈值"""
        report = make_report(expires=CUTOFF - timedelta(days=1))

        assert self.evaluator.evaluate_report(report, CUTOFF) == ReportStatus.NOT_HEALTHY

    def test_certificate_error(self):
        """测试证书错误时不健康"""
        report = make_report(certificate_error=NETWORK_ERROR)

        assert self.evaluator.evaluate_report(report, CUTOFF) == ReportStatus.NOT_HEALTHY
        assert self.evaluator.evaluate_batch([report], CUTOFF) == BatchStatus.ERROR

    def test_registration_error(self):
        """测试注册信息错误时不健康"""
        report = make_report(registration_error=RecordError(kind=ErrorKind.EXTRACTION, message="no date"))

        assert self.evaluator.evaluate_report(report, CUTOFF) == ReportStatus.NOT_HEALTHY
        assert self.evaluator.evaluate_batch([report], CUTOFF) == BatchStatus.ERROR

    def test_error_takes_precedence_over_imminent(self):
        """测试批次中错误优先于即将过期"""
        reports = [
            make_report("soon.example.com", not_after=CUTOFF - timedelta(days=3)),
            make_report("broken.example.com", certificate_error=NETWORK_ERROR),
            make_report("ok.example.com"),
        ]

        assert self.evaluator.evaluate_batch(reports, CUTOFF) == BatchStatus.ERROR
        assert self.evaluator.evaluate_batch(reversed(reports), CUTOFF) == BatchStatus.ERROR

    def test_empty_batch_is_healthy(self):
        """测试空批次"""
        assert self.evaluator.evaluate_batch([], CUTOFF) == BatchStatus.HEALTHY

    def test_classify(self):
        """测试逐条状态与批次状态"""
        reports = [
            make_report("ok.example.com"),
            make_report("soon.example.com", expires=CUTOFF - timedelta(days=3)),
        ]

        classification = classify(reports, CUTOFF)

        assert classification.cutoff == CUTOFF
        assert classification.report_statuses == [ReportStatus.HEALTHY, ReportStatus.NOT_HEALTHY]
        assert classification.batch_status == BatchStatus.IMMINENT
        assert classification.healthy_count == 1
        assert classification.not_healthy_count == 1

    def test_categorize_reports(self):
        """测试报告分类"""
        ok = make_report("ok.example.com")
        soon = make_report("soon.example.com", not_after=CUTOFF - timedelta(days=3))
        broken = make_report("broken.example.com", certificate_error=NETWORK_ERROR)

        categorized = self.evaluator.categorize_reports([ok, soon, broken], CUTOFF)

        assert categorized['healthy'] == [ok]
        assert categorized['expiring_soon'] == [soon]
        assert categorized['error'] == [broken]

    def test_empty_registration_is_imminent(self):
        """测试没有日期也没有错误的注册记录视为即将过期，而不是错误"""
        report = ExpirationReport(
            hostname="localhost",
            apex_domain=None,
            certificate=CertificateRecord(not_after=CUTOFF + timedelta(days=90)),
            registration=RegistrationRecord()
        )

        assert self.evaluator.evaluate_report(report, CUTOFF) == ReportStatus.NOT_HEALTHY
        assert self.evaluator.evaluate_batch([report, make_report()], CUTOFF) == BatchStatus.IMMINENT
        assert self.evaluator.categorize_reports([report], CUTOFF)["expiring_soon"] == [report]


class TestCutoffFor:
    """阈值计算测试"""

    def test_cutoff_is_now_minus_lookahead(self):
        """测试阈值为当前时间减去提前量"""
        now = datetime(2030, 1, 31, tzinfo=timezone.utc)

        assert cutoff_for(timedelta(days=30), now) == datetime(2030, 1, 1, tzinfo=timezone.utc)

    def test_negative_lookahead(self):
        """测试负的提前量得到未来的阈值"""
        now = datetime(2030, 1, 1, tzinfo=timezone.utc)

        assert cutoff_for(timedelta(days=-30), now) == datetime(2030, 1, 31, tzinfo=timezone.utc)

    def test_default_lookahead(self):
        """测试默认提前量为30天"""
        assert DEFAULT_LOOKAHEAD == timedelta(days=30)

        before = datetime.now(timezone.utc)
        cutoff = cutoff_for()
        after = datetime.now(timezone.utc)

        assert before - DEFAULT_LOOKAHEAD <= cutoff <= after - DEFAULT_LOOKAHEAD
