"""
AWS Lambda函数入口点

API Gateway 请求按路径返回文本、JSON 或 iCal 格式的过期信息；
EventBridge 定时事件检查 HOSTNAMES 中的主机并在有异常时发送 SNS 告警；
action 为 health_check 的事件返回系统健康状态。
"""
from datetime import datetime, timezone, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

import mimeparse

from .models import BatchStatus, Classification, ExpirationReport, LookupContext
from .services.certificate_prober import CertificateProber
from .services.config import MonitorConfig, parse_duration
from .services.error_handler import ErrorHandler
from .services.expiration_aggregator import ExpirationAggregator
from .services.logger import LoggerService
from .services.report_formatter import FORMATTERS, filter_quiet
from .services.sns_notification import SNSNotificationService
from .services.threshold_evaluator import ThresholdEvaluator, cutoff_for


INDEX_TEXT = """
domain-expiry-monitor checks your domain and certificate expirations

Provide a list of host names separated by commas, for example to monitor
example.com, example.org and example.net:

    /example.com,example.org,example.net

Formats
-------

Responses are available as text, JSON or iCal. Choose the format with the
Accept header ('text/plain', 'application/json' or 'text/calendar'), or
prefix the path:

    /json/example.com
    /text/example.com
    /ical/example.com

The iCal calendar holds one all-day event per certificate and per domain
registration, dated on its expiration (or today when it could not be checked).

Each text line holds the host name, the certificate expiration (or error),
the registrable domain and the domain registration expiration (or error).

Status Code
-----------

'502 Bad Gateway' means at least one of the hosts could not be checked.
'417 Expectation Failed' means at least one certificate or domain expires
soon (default lookahead: 30 days, change it with the ttl query parameter).

The status code never changes for iCal responses, calendar programs expect
'200 OK'.

Parameters
----------

ttl     redefine the lookahead window, e.g. ?ttl=720h or ?ttl=60d
quiet   only list hosts that are not healthy, e.g. ?ttl=60d&quiet
"""

STATUS_CODES = {
    BatchStatus.HEALTHY: 200,
    BatchStatus.IMMINENT: 417,
    BatchStatus.ERROR: 502,
}

FORMAT_PREFIXES = {
    '/ical/': 'text/calendar',
    '/json/': 'application/json',
    '/text/': 'text/plain',
}

DEFAULT_CONTENT_TYPE = 'text/plain'

CALENDAR_CONTENT_TYPE = 'text/calendar'


def negotiate_content_type(accept: Optional[str], offers: Sequence[str], default: str) -> str:
    """
    根据 Accept 头选择响应类型

    Args:
        accept: Accept 请求头
        offers: 可提供的类型
        default: 无法匹配时使用的类型

    Returns:
        str: 选中的类型
    """
    if not accept:
        return default

    # q 值与匹配程度相同时 mimeparse 选靠后的类型，倒序传入让靠前的类型优先
    try:
        match = mimeparse.best_match(list(reversed(offers)), accept.lower())
    except ValueError:
        return default

    return match or default


class ExpirationMonitor:
    """过期监控器主类"""

    def __init__(self, config: Optional[MonitorConfig] = None):
        """
        初始化监控器

        Args:
            config: 监控配置，None 时从环境变量加载
        """
        self.config = config or MonitorConfig.from_env()

        self.logger_service = LoggerService(log_level=self.config.log_level)
        self.error_handler = ErrorHandler()
        self.aggregator = ExpirationAggregator(
            prober=CertificateProber(timeout=self.config.dial_timeout, error_handler=self.error_handler),
            max_workers=self.config.max_workers,
            error_handler=self.error_handler
        )
        self.evaluator = ThresholdEvaluator()

        self.logger_service.log_configuration_info(self.config.as_dict())

    def check(self, hostnames: Sequence[str],
              lookahead: Optional[timedelta] = None) -> Tuple[List[ExpirationReport], Classification]:
        """
        检查一批主机名并分类

        Args:
            hostnames: 主机名列表
            lookahead: 提前量，None 时使用配置值

        Returns:
            Tuple[List[ExpirationReport], Classification]: 报告与分类结果
        """
        lookahead = self.config.lookahead if lookahead is None else lookahead

        self.logger_service.reset_stats()
        self.logger_service.log_check_start(len(hostnames))

        context = LookupContext(timeout=self.config.request_timeout)
        try:
            reports = self.aggregator.aggregate(hostnames, context)
        except Exception as e:
            self.logger_service.log_error(",".join(hostnames), e)
            raise

        classification = self.evaluator.classify(reports, cutoff_for(lookahead))

        for report, status in zip(reports, classification.report_statuses):
            self.logger_service.log_report(report, status)

        self.logger_service.log_check_end()
        return reports, classification

    def handle_request(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """
        处理 API Gateway 请求

        Args:
            event: API Gateway 代理事件

        Returns:
            dict: API Gateway 代理响应
        """
        path = event.get('path') or event.get('rawPath') or '/'
        headers = {key.lower(): value for key, value in (event.get('headers') or {}).items()}
        query = event.get('queryStringParameters') or {}

        if path == '/':
            return _response(200, INDEX_TEXT, 'text/plain')

        content_type = None
        for prefix, prefixed_type in FORMAT_PREFIXES.items():
            if path.startswith(prefix):
                path = path[len(prefix) - 1:]
                content_type = prefixed_type
                break

        if content_type is None:
            content_type = negotiate_content_type(headers.get('accept'), list(FORMATTERS), DEFAULT_CONTENT_TYPE)

        lookahead = None
        ttl = query.get('ttl')
        if ttl:
            try:
                lookahead = parse_duration(ttl)
            except ValueError as e:
                return _response(400, f"Cannot parse ttl parameter: {e}\n", 'text/plain')

        hostnames = [hostname for hostname in path.strip('/').split(',') if hostname]
        if not hostnames:
            return _response(400, "No host names given\n", 'text/plain')

        reports, classification = self.check(hostnames, lookahead)

        if 'quiet' in query:
            reports = filter_quiet(reports, classification)

        body = FORMATTERS[content_type](reports)

        if content_type == CALENDAR_CONTENT_TYPE:
            return _response(200, body, content_type,
                             {'Content-Disposition': 'inline; filename=calendar.ics'})

        return _response(STATUS_CODES[classification.batch_status], body, content_type)

    def run_scheduled(self) -> Dict[str, Any]:
        """
        执行定时检查：检查 HOSTNAMES，有异常时发送 SNS 告警

        Returns:
            dict: 执行结果摘要
        """
        hostnames = list(self.config.hostnames)

        if not hostnames:
            self.logger_service.logger.warning("没有找到要检查的主机名")
            return {
                'statusCode': 500,
                'body': {
                    'message': 'No host names configured',
                    'timestamp': datetime.now(timezone.utc).isoformat()
                }
            }

        reports, classification = self.check(hostnames)

        notification_sent = None
        if classification.not_healthy_count and self.config.sns_topic_arn:
            notification_sent = self._notification_service().send_expiration_alert(reports, classification)
            self.logger_service.log_notification_sent("SNS", classification.not_healthy_count, notification_sent)

        self.logger_service.log_execution_summary()

        not_healthy = filter_quiet(reports, classification)
        execution_summary = self.logger_service.get_execution_summary()
        errors = [
            error for report in reports
            for error in (report.certificate.error, report.registration.error)
            if error is not None
        ]

        return {
            'statusCode': 200,
            'body': {
                'message': 'Expiration monitor executed successfully',
                'batch_status': classification.batch_status.value,
                'summary': {
                    'total_hostnames': len(reports),
                    'healthy': classification.healthy_count,
                    'not_healthy': classification.not_healthy_count,
                    'execution_time_seconds': execution_summary['duration_seconds']
                },
                'not_healthy_hostnames': [report.hostname for report in not_healthy],
                'notification_sent': notification_sent,
                'error_statistics': self.error_handler.get_error_statistics(errors),
                'timestamp': datetime.now(timezone.utc).isoformat()
            }
        }

    def _notification_service(self) -> SNSNotificationService:
        return SNSNotificationService(topic_arn=self.config.sns_topic_arn)

    def validate_system_health(self) -> Dict[str, Any]:
        """
        验证系统健康状态

        Returns:
            dict: 系统健康状态信息
        """
        health_status = {
            'overall_healthy': True,
            'components': {},
            'issues': []
        }

        try:
            # 检查主机名配置
            hostnames = list(self.config.hostnames)
            health_status['components']['hostnames'] = {
                'healthy': len(hostnames) > 0,
                'details': {'total_hostnames': len(hostnames)}
            }

            if not hostnames:
                health_status['issues'].append("没有配置要检查的主机名")
                health_status['overall_healthy'] = False

            # 未配置 SNS 主题时不发送告警，不算异常
            if not self.config.sns_topic_arn:
                health_status['components']['sns_notification'] = {
                    'healthy': True,
                    'details': {'enabled': False}
                }
                return health_status

            notification_service = self._notification_service()

            # 检查SNS配置
            sns_config = notification_service.get_configuration_status()
            health_status['components']['sns_notification'] = {
                'healthy': sns_config['configuration_valid'],
                'details': sns_config
            }

            if not sns_config['configuration_valid']:
                health_status['issues'].append("SNS通知配置无效")
                health_status['overall_healthy'] = False
                return health_status

            # 测试SNS连接
            sns_connection = notification_service.test_connection()
            health_status['components']['sns_connection'] = {
                'healthy': sns_connection,
                'details': {'connection_test': sns_connection}
            }

            if not sns_connection:
                health_status['issues'].append("SNS连接测试失败")
                health_status['overall_healthy'] = False

        except Exception as e:
            health_status['overall_healthy'] = False
            health_status['issues'].append(f"健康检查时发生错误: {str(e)}")

        return health_status


def _response(status_code: int, body: str, content_type: str,
              extra_headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    headers = {'Content-Type': f'{content_type}; charset=utf-8'}
    headers.update(extra_headers or {})
    return {
        'statusCode': status_code,
        'headers': headers,
        'body': body
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda函数入口点

    Args:
        event: API Gateway 代理事件、EventBridge 定时事件或健康检查事件
        context: Lambda运行时上下文

    Returns:
        dict: 执行结果
    """
    event = event or {}

    try:
        monitor = ExpirationMonitor()

        if event.get('path') or event.get('rawPath'):
            return monitor.handle_request(event)

        if event.get('action') == 'health_check':
            health = monitor.validate_system_health()
            return {
                'statusCode': 200 if health['overall_healthy'] else 503,
                'body': health
            }

        return monitor.run_scheduled()

    except Exception as e:
        LoggerService().logger.error(f"Lambda函数执行时发生严重错误: {str(e)}")

        return {
            'statusCode': 500,
            'body': {
                'message': 'Expiration monitor encountered a critical error',
                'error': str(e),
                'timestamp': datetime.now(timezone.utc).isoformat()
            }
        }
