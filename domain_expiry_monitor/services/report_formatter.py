"""
报告格式化（展示层）
"""
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from icalendar import Calendar, Event

from ..models import Classification, ExpirationReport, RecordError, ReportStatus


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _error_text(error: Optional[RecordError]) -> Optional[str]:
    return error.message if error is not None else None


def report_to_dict(report: ExpirationReport) -> Dict[str, Any]:
    """转换为 JSON 输出使用的字典"""
    return {
        'Name': report.hostname,
        'CertificateExpires': _isoformat(report.certificate.not_after),
        'CertificateError': _error_text(report.certificate.error),
        'Domain': report.apex_domain or '',
        'DomainExpires': _isoformat(report.registration.expires),
        'DomainError': _error_text(report.registration.error),
    }


def format_text_line(report: ExpirationReport) -> str:
    """
    格式化为一行制表符分隔的文本

    依次为主机名、证书过期时间（或错误）、可注册域名、注册过期时间（或错误）。
    """
    certificate = report.certificate
    registration = report.registration

    certificate_text = _error_text(certificate.error) or _isoformat(certificate.not_after) or ''
    registration_text = _error_text(registration.error) or _isoformat(registration.expires) or ''

    return "\t".join([
        report.hostname,
        certificate_text,
        report.apex_domain or '',
        registration_text,
    ])


def format_text(reports: Sequence[ExpirationReport]) -> str:
    return "".join(format_text_line(report) + "\n" for report in reports)


def format_json(reports: Sequence[ExpirationReport]) -> str:
    return json.dumps({'expirations': [report_to_dict(report) for report in reports]}, ensure_ascii=False)


def filter_quiet(reports: Sequence[ExpirationReport], classification: Classification) -> List[ExpirationReport]:
    """只保留不健康的报告"""
    return [
        report for report, status in zip(reports, classification.report_statuses)
        if status == ReportStatus.NOT_HEALTHY
    ]


ICAL_PRODID = '-//domain-expiry-monitor//'
ICAL_UID_DOMAIN = 'domain-expiry-monitor'


def _calendar_event(uid: str, when: datetime, summary: str, description: str, now: datetime) -> Event:
    event = Event()
    event.add('uid', uid)
    event.add('dtstamp', now)
    event.add('dtstart', when.date())
    event.add('dtend', when.date())
    event.add('summary', summary)
    event.add('description', description)
    return event


def format_ical(reports: Sequence[ExpirationReport], now: Optional[datetime] = None) -> str:
    """
    格式化为 iCalendar 日历

    每个主机生成两个全天事件：证书过期和域名注册过期。
    检查出错或没有日期的事件放在当天，摘要中写明错误。

    Args:
        reports: 报告列表
        now: 当前时间，默认 UTC 当前时间

    Returns:
        str: iCalendar 文本
    """
    now = now or datetime.now(timezone.utc)

    calendar = Calendar()
    calendar.add('prodid', ICAL_PRODID)
    calendar.add('version', '2.0')
    calendar.add('calscale', 'GREGORIAN')

    for report in reports:
        name = report.hostname

        certificate = report.certificate
        uid = f"{name}@certificates.{ICAL_UID_DOMAIN}"
        if certificate.error is None and certificate.not_after is not None:
            event = _calendar_event(
                uid, certificate.not_after,
                f"{name} certificate expires on {certificate.not_after.isoformat()}",
                f"{name} certificate expires", now
            )
        else:
            event = _calendar_event(
                uid, now,
                f"checking certificate for {name}: {_error_text(certificate.error) or 'no expiration date'}",
                f"{name}: error checking certificate", now
            )
        calendar.add_component(event)

        registration = report.registration
        uid = f"{name}@domain.{ICAL_UID_DOMAIN}"
        if registration.error is None and registration.expires is not None:
            event = _calendar_event(
                uid, registration.expires,
                f"The domain registration for {name} ({report.apex_domain or ''}) "
                f"expires on {registration.expires.isoformat()}",
                f"{name} domain expires", now
            )
        else:
            event = _calendar_event(
                uid, now,
                f"checking domain expiration for {name}: {_error_text(registration.error) or 'no expiration date'}",
                f"{name}: error checking domain expiration", now
            )
        calendar.add_component(event)

    return calendar.to_ical().decode('utf-8')


FORMATTERS = {
    'application/json': format_json,
    'text/plain': format_text,
    'text/calendar': format_ical,
}
