"""
可注册域名分组测试
"""
import pytest

from domain_expiry_monitor.interfaces import ApexResolverInterface
from domain_expiry_monitor.services.apex_deduplicator import ApexDeduplicator, PublicSuffixResolver
from domain_expiry_monitor.models import ApexResolutionError, ErrorKind


class TestPublicSuffixResolver:
    """公共后缀解析测试类"""

    def setup_method(self):
        """测试前准备"""
        self.resolver = PublicSuffixResolver()

    @pytest.mark.parametrize("hostname,expected", [
        ("example.com", "example.com"),
        ("www.example.com", "example.com"),
        ("a.b.example.com", "example.com"),
        ("a.example.co.uk", "example.co.uk"),
        ("WWW.Example.ORG", "example.org"),
        ("www.example.com.", "example.com"),
        ("  shop.example.net  ", "example.net"),
    ])
    def test_apex(self, hostname, expected):
        """测试可注册域名推导"""
        assert self.resolver.apex(hostname) == expected

    @pytest.mark.parametrize("hostname", [
        "",
        "com",
        "co.uk",
        "localhost",
        "1.2.3.4",
        "a..example.com",
        "example.com/path",
        "user@example.com",
        "example.com:443",
        "exa mple.com",
    ])
    def test_apex_invalid(self, hostname):
        """测试无法推导时抛出异常"""
        with pytest.raises(ApexResolutionError):
            self.resolver.apex(hostname)


class MappingResolver(ApexResolverInterface):
    """按映射表解析的测试实现"""

    def __init__(self, mapping):
        self.mapping = mapping

    def apex(self, hostname):
        if hostname not in self.mapping:
            raise ApexResolutionError(f"unknown host {hostname}")
        return self.mapping[hostname]


class TestApexDeduplicator:
    """可注册域名分组器测试类"""

    def test_group_by_apex(self):
        """测试同一可注册域名的主机归为一组，保持首次出现顺序"""
        deduplicator = ApexDeduplicator()

        grouping = deduplicator.group_by_apex([
            "www.example.com",
            "shop.example.org",
            "api.example.com",
            "example.com",
        ])

        assert grouping.apexes == ["example.com", "example.org", "example.com", "example.com"]
        assert grouping.groups == {"example.com": [0, 2, 3], "example.org": [1]}
        assert grouping.unique_apexes == ["example.com", "example.org"]
        assert grouping.errors == {}

    def test_unresolvable_host_keeps_position(self):
        """测试无法解析的主机保留位置并记录错误"""
        deduplicator = ApexDeduplicator(resolver=MappingResolver({"a.example.test": "example.test"}))

        grouping = deduplicator.group_by_apex(["a.example.test", "broken", "a.example.test"])

        assert grouping.apexes == ["example.test", None, "example.test"]
        assert grouping.groups == {"example.test": [0, 2]}
        assert list(grouping.errors) == [1]
        assert grouping.errors[1].kind == ErrorKind.RESOLUTION
        assert "broken" in grouping.errors[1].message

    def test_empty_input(self):
        """测试空输入"""
        grouping = ApexDeduplicator().group_by_apex([])

        assert grouping.apexes == []
        assert grouping.groups == {}
