"""
Process-level settings and configuration management.

Per-account channel configuration is supplied by the host as a raw mapping
and parsed by the channel account models; this module only carries the
knobs that belong to the process (endpoints, ports, timeouts).
"""
from pydantic_settings import BaseSettings
from typing import Optional
from pydantic import model_validator


class Settings(BaseSettings):
    """Settings loaded from environment variables / .env."""

    # 服务配置
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # 企业微信配置
    WECOM_API_BASE_URL: str = "https://qyapi.weixin.qq.com/cgi-bin"
    WECOM_CALLBACK_HOST: str = "0.0.0.0"
    WECOM_CALLBACK_PORT: int = 8081  # 回调服务端口

    # 个人微信配置
    WECHAT_DEFAULT_PUPPET: str = "wechaty-puppet-wechat"
    WECHAT_QR_URL_BASE: str = "https://wechaty.js.org/qrcode/"
    WECHAT_QR_WAIT_SECONDS: float = 120

    # 探测/审计超时(秒)
    PROBE_TIMEOUT_SECONDS: float = 10
    AUDIT_TIMEOUT_SECONDS: float = 15

    # 渠道配置文件(JSON),回调服务启动时读取
    CHANNEL_CONFIG_FILE: Optional[str] = None

    @model_validator(mode='after')
    def validate_timeouts(self):
        """超时必须为正数"""
        for name in ("PROBE_TIMEOUT_SECONDS", "AUDIT_TIMEOUT_SECONDS", "WECHAT_QR_WAIT_SECONDS"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} 必须大于 0")
        return self

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


# 创建全局settings实例
settings = Settings()


def get_settings() -> Settings:
    """
    获取设置实例

    Returns:
        Settings 实例
    """
    return settings
