"""微信 / 企业微信渠道插件"""

__version__ = "0.1.0"
