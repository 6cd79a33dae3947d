"""
SNS通知服务
"""
import os
from typing import List, Optional
import logging
from datetime import datetime, timezone

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..interfaces import NotificationServiceInterface
from ..models import Classification, ExpirationReport
from .threshold_evaluator import ThresholdEvaluator


def _format_date(value: Optional[datetime]) -> str:
    return value.strftime('%Y-%m-%d') if value else "-"


class SNSNotificationService(NotificationServiceInterface):
    """SNS通知服务实现"""

    def __init__(self, topic_arn: Optional[str] = None, region_name: Optional[str] = None):
        """
        初始化SNS通知服务

        Args:
            topic_arn: SNS主题ARN，如果为None则从环境变量读取
            region_name: AWS区域名称，如果为None则自动检测
        """
        self.topic_arn = topic_arn or os.getenv('SNS_TOPIC_ARN')

        if region_name:
            self.region_name = region_name
        elif self.topic_arn and self.topic_arn.startswith('arn:aws:sns:'):
            # 从SNS ARN中提取区域
            self.region_name = self.topic_arn.split(':')[3]
        else:
            self.region_name = os.getenv('AWS_REGION', 'us-east-1')

        self.logger = logging.getLogger(__name__)
        self.evaluator = ThresholdEvaluator()

        self.sns_client = None
        try:
            self.sns_client = boto3.client('sns', region_name=self.region_name)
            self.logger.info(f"SNS客户端初始化成功，区域: {self.region_name}")
        except (BotoCoreError, ClientError) as e:
            self.logger.error(f"初始化SNS客户端失败: {str(e)}")

    def send_expiration_alert(self, reports: List[ExpirationReport], classification: Classification) -> bool:
        """
        发送过期告警

        只有存在不健康的报告时才发送，否则直接返回成功。发送失败不重试。

        Args:
            reports: 全部报告
            classification: 对应的分类结果

        Returns:
            bool: 发送是否成功
        """
        if classification.not_healthy_count == 0:
            self.logger.info("所有主机状态正常，跳过通知发送")
            return True

        if not self._validate_configuration():
            return False

        subject = self._format_subject(reports, classification)
        message = self.format_notification_content(reports, classification)

        try:
            response = self.sns_client.publish(
                TopicArn=self.topic_arn,
                Subject=subject,
                Message=message
            )
        except ClientError as e:
            error_code = e.response['Error']['Code']
            error_message = e.response['Error']['Message']
            self.logger.error(f"SNS发送失败 - {error_code}: {error_message}")
            return False
        except BotoCoreError as e:
            self.logger.error(f"发送SNS通知时发生错误: {str(e)}")
            return False

        self.logger.info(f"SNS通知发送成功，MessageId: {response.get('MessageId')}")
        return True

    def format_notification_content(self, reports: List[ExpirationReport], classification: Classification) -> str:
        """
        格式化通知内容

        Args:
            reports: 全部报告
            classification: 对应的分类结果

        Returns:
            str: 格式化的通知内容
        """
        categorized = self.evaluator.categorize_reports(reports, classification.cutoff)

        lines = [
            "证书与域名过期监控报告",
            "=" * 30,
            f"检查时间: {datetime.now(timezone.utc).strftime('%Y-%m-%d %H:%M:%S')} UTC",
            f"判定阈值: {classification.cutoff.strftime('%Y-%m-%d %H:%M:%S')} UTC",
            f"批次状态: {classification.batch_status.value}",
            ""
        ]

        if categorized['error']:
            lines.extend([
                "❌ 检查失败:",
                ""
            ])
            for report in categorized['error']:
                lines.append(f"• {report.hostname}")
                if report.certificate.error is not None:
                    lines.append(f"  证书错误: {report.certificate.error.message}")
                if report.registration.error is not None:
                    lines.append(f"  域名错误: {report.registration.error.message}")
                lines.append("")

        if categorized['expiring_soon']:
            lines.extend([
                "⚠️  即将过期:",
                ""
            ])
            for report in categorized['expiring_soon']:
                lines.append(f"• {report.hostname}")
                lines.append(f"  证书过期时间: {_format_date(report.certificate.not_after)}")
                lines.append(f"  域名 {report.apex_domain or '-'} 注册过期时间: {_format_date(report.registration.expires)}")
                lines.append("")

        lines.extend([
            f"✅ 正常: {len(categorized['healthy'])} 个",
            "",
            "此消息由过期监控系统自动发送。"
        ])

        return "\n".join(lines)

    def _format_subject(self, reports: List[ExpirationReport], classification: Classification) -> str:
        """
        格式化邮件主题

        Args:
            reports: 全部报告
            classification: 对应的分类结果

        Returns:
            str: 邮件主题
        """
        error_count = len([report for report in reports if report.has_error])
        expiring_count = classification.not_healthy_count - error_count

        if error_count > 0 and expiring_count > 0:
            return f"🚨 过期监控警报: {error_count}个检查失败, {expiring_count}个即将过期"
        elif error_count > 0:
            return f"🚨 过期监控警报: {error_count}个检查失败"
        elif expiring_count > 0:
            return f"⚠️ 过期监控提醒: {expiring_count}个即将过期"
        else:
            return "过期监控状态报告"

    def _validate_configuration(self) -> bool:
        """
        验证配置是否正确

        Returns:
            bool: 配置是否有效
        """
        if not self.sns_client:
            self.logger.error("SNS客户端未初始化")
            return False

        if not self.topic_arn:
            self.logger.error("SNS主题ARN未配置")
            return False

        return True

    def test_connection(self) -> bool:
        """
        测试SNS连接

        Returns:
            bool: 连接是否成功
        """
        if not self._validate_configuration():
            return False

        try:
            self.sns_client.get_topic_attributes(TopicArn=self.topic_arn)
            self.logger.info("SNS连接测试成功")
            return True

        except ClientError as e:
            error_code = e.response['Error']['Code']
            error_message = e.response['Error']['Message']
            self.logger.error(f"SNS连接测试失败 - {error_code}: {error_message}")
            return False

        except BotoCoreError as e:
            self.logger.error(f"SNS连接测试时发生错误: {str(e)}")
            return False

    def get_configuration_status(self) -> dict:
        """
        获取配置状态

        Returns:
            dict: 配置状态信息
        """
        return {
            'sns_client_initialized': self.sns_client is not None,
            'topic_arn_configured': bool(self.topic_arn),
            'topic_arn': self.topic_arn,
            'region_name': self.region_name,
            'configuration_valid': self._validate_configuration()
        }
