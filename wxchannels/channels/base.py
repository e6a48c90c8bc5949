"""
渠道插件抽象层基类

定义宿主运行时消费的统一渠道插件契约,屏蔽微信/企业微信之间的差异。
所有渠道插件(个人微信、企业微信)都应继承BaseChannelPlugin。

契约按宿主的命名空间组织:
1. meta / capabilities / config_schema: 静态描述
2. config: 账号解析、默认账号、启停、allowFrom 格式化
3. security / groups: DM 策略、群聊 @ 门控、工具策略
4. messaging / directory: 目标规范化、通讯录查询
5. outbound: 文本与媒体发送
6. status / gateway: 状态问题、探测、审计、启停账号
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class ChannelType(str, Enum):
    """渠道类型枚举"""
    WECHAT = "wechat"
    WECOM = "wecom"


class MessageType(str, Enum):
    """入站消息类型枚举"""
    TEXT = "text"
    IMAGE = "image"
    VOICE = "voice"
    VIDEO = "video"
    FILE = "file"
    LOCATION = "location"
    LINK = "link"
    MARKDOWN = "markdown"
    EVENT = "event"  # 系统事件(如关注、进入应用等)
    UNKNOWN = "unknown"


class DmPolicy(str, Enum):
    """私聊处理策略"""
    OPEN = "open"
    PAIRING = "pairing"
    ALLOWLIST = "allowlist"
    DISABLED = "disabled"


class GroupPolicy(str, Enum):
    """群聊处理策略"""
    OPEN = "open"
    DISABLED = "disabled"
    ALLOWLIST = "allowlist"


class ChunkMode(str, Enum):
    """出站文本分片模式"""
    LENGTH = "length"
    NEWLINE = "newline"


class ChannelMeta(BaseModel):
    """渠道展示元数据"""
    id: ChannelType
    label: str
    selection_label: str
    detail_label: str
    docs_path: str
    docs_label: str
    blurb: str
    system_image: str
    order: int
    aliases: List[str] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True, use_enum_values=True)


class ChannelCapabilities(BaseModel):
    """渠道静态能力标记"""
    chat_types: List[str] = Field(default_factory=lambda: ["direct", "group"])
    polls: bool = False
    reactions: bool = False
    edit: bool = False
    unsend: bool = False
    reply: bool = True
    effects: bool = False
    group_management: bool = False
    threads: bool = False
    media: bool = True
    native_commands: bool = False
    block_streaming: bool = True

    model_config = ConfigDict(frozen=True)


class ChannelMessage(BaseModel):
    """渠道消息模型 - 统一的跨平台入站消息格式"""
    message_id: str = Field(..., description="消息唯一标识")
    channel: ChannelType = Field(..., description="消息所属渠道")
    account_id: str = Field(..., description="接收消息的账号ID")
    sender_id: str = Field(..., description="发送者ID(微信 contact id / 企微 userid)")
    recipient_id: Optional[str] = Field(None, description="接收者ID(机器人自身)")
    content: str = Field("", description="消息文本内容")
    msg_type: MessageType = Field(MessageType.TEXT, description="消息类型")
    timestamp: int = Field(
        default_factory=lambda: int(datetime.now().timestamp() * 1000),
        description="消息时间戳(毫秒)"
    )

    # 可选字段
    reply_to: Optional[str] = Field(None, description="回复的消息ID")
    thread_id: Optional[str] = Field(None, description="话题ID")
    attachments: List[Dict[str, Any]] = Field(default_factory=list, description="附件列表(图片/文件等)")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="额外元数据(如@列表、群ID等)")
    raw_data: Dict[str, Any] = Field(default_factory=dict, description="原始消息数据(保留平台特定信息)")

    model_config = ConfigDict(use_enum_values=True)


class AccountDescription(BaseModel):
    """账号在 CLI/UI 列表中的描述"""
    name: str
    label: str
    status: str


class OutboundResult(BaseModel):
    """出站发送结果"""
    message_id: str
    channel: ChannelType
    account_id: str
    chunks: int = 1
    data: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(use_enum_values=True)


class DirectoryEntry(BaseModel):
    """通讯录条目(联系人/群/部门)"""
    id: str
    type: str
    name: Optional[str] = None


class BaseResolvedAccount(BaseModel):
    """
    已解析账号的公共字段

    每次解析都会重新构建,所有可选字段都有确定的默认值。
    """
    id: str
    enabled: bool = True
    name: str
    dm_policy: DmPolicy = DmPolicy.PAIRING
    group_policy: GroupPolicy = GroupPolicy.OPEN
    allow_from: List[str] = Field(default_factory=list)
    group_allow_from: List[str] = Field(default_factory=list)
    groups: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    history_limit: int = 20
    dm_history_limit: int = 10
    text_chunk_limit: int = 2048
    chunk_mode: ChunkMode = ChunkMode.LENGTH
    block_streaming: bool = True
    media_max_mb: float = 20
    timeout_seconds: float = 30
    proxy: Optional[str] = None

    model_config = ConfigDict(frozen=True, use_enum_values=True)


AccountT = TypeVar("AccountT", bound=BaseResolvedAccount)


class BaseChannelPlugin(ABC, Generic[AccountT]):
    """
    渠道插件抽象基类

    子类负责把平台特定的账号模型、消息格式和传输方式适配到统一契约。
    配置相关方法是纯函数;发送、探测、启停等方法通过插件自身的
    ChannelRuntime 获取客户端实例。
    """

    meta: ChannelMeta
    capabilities: ChannelCapabilities = ChannelCapabilities()
    delivery_mode: str = "direct"
    text_chunk_limit: int = 2048
    target_hint: str = "<id>"
    default_runtime: Dict[str, Any] = {"connected": False, "last_error": None}

    def __init__(self, channel_type: ChannelType):
        self.channel_type = channel_type
        self.channel_name = channel_type.value

    # ---- config ----

    @property
    @abstractmethod
    def config_schema(self) -> Dict[str, Any]:
        """原始配置的 JSON Schema"""
        pass

    @abstractmethod
    def resolve_account(self, cfg: Dict[str, Any], account_id: Optional[str] = None) -> AccountT:
        """
        解析账号配置

        Raises:
            AccountNotFoundError: 账号不存在
            ConfigValidationError: 账号字段类型错误
        """
        pass

    @abstractmethod
    def is_configured(self, account: AccountT) -> bool:
        pass

    def describe_account(self, account: AccountT) -> AccountDescription:
        return AccountDescription(
            name=account.id,
            label=account.name,
            status="enabled" if account.enabled else "disabled",
        )

    # ---- outbound ----

    @abstractmethod
    async def send_text(
        self,
        cfg: Dict[str, Any],
        to: str,
        text: str,
        account_id: Optional[str] = None,
    ) -> OutboundResult:
        pass

    @abstractmethod
    async def send_media(
        self,
        cfg: Dict[str, Any],
        to: str,
        media_url: str,
        text: Optional[str] = None,
        account_id: Optional[str] = None,
    ) -> OutboundResult:
        pass

    # ---- status ----

    @abstractmethod
    async def collect_status_issues(self, account: AccountT) -> List[str]:
        pass

    # ---- gateway ----

    @abstractmethod
    async def start_account(self, cfg: Dict[str, Any], account_id: Optional[str] = None) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def stop_account(self, account_id: str) -> Dict[str, Any]:
        pass

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} channel={self.channel_name}>"


class ChannelAdapterError(Exception):
    """渠道适配器异常基类"""
    pass


class ChannelNotConfiguredError(ChannelAdapterError):
    """渠道未配置异常"""
    pass


class ConfigValidationError(ChannelAdapterError):
    """原始配置字段类型错误"""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


class AccountNotFoundError(ChannelAdapterError):
    """请求的账号(或默认账号)不存在"""

    def __init__(self, channel_label: str, account_id: str):
        self.account_id = account_id
        super().__init__(f"{channel_label} account not found: {account_id}")


class ChannelMessageError(ChannelAdapterError):
    """渠道消息错误异常"""
    pass


class TargetNotFoundError(ChannelMessageError):
    """发送目标无法解析为联系人/群/用户"""

    def __init__(self, channel_label: str, target: str):
        self.target = target
        super().__init__(f"{channel_label} target not found: {target}")


class ChannelAuthError(ChannelAdapterError):
    """渠道认证错误异常"""
    pass


class CredentialError(ChannelAuthError):
    """平台拒绝签发访问凭证"""

    def __init__(self, errmsg: str, errcode: Optional[int] = None):
        self.errcode = errcode
        self.errmsg = errmsg
        if errcode is None:
            super().__init__(f"Failed to get access token: {errmsg}")
        else:
            super().__init__(f"Failed to get access token: {errmsg} ({errcode})")


class TransportError(ChannelAdapterError):
    """网络/HTTP 层失败"""
    pass
