"""
Wechaty 会话封装

把一个 Wechaty 实例包装成插件需要的最小接口:
- 启停/登出,登录状态跟踪(login/logout 事件)
- 扫码登录: 保存最近一次二维码,提供登录等待
- 按ID查找群/联系人,列出全部群/联系人
- 构造 FileBox

wechaty 是可选依赖(pip install wxchannels[wechat]),
只在 create_wechaty_session 中导入。
"""

import asyncio
import logging
from typing import Any, Callable, List, NamedTuple, Optional
from urllib.parse import quote

from wxchannels.channels.wechat.accounts import ResolvedWeChatAccount
from wxchannels.config.settings import get_settings

logger = logging.getLogger(__name__)

# ScanStatus.Waiting / ScanStatus.Scanned
QR_DISPLAY_STATUSES = (2, 3)


class WechatyBindings(NamedTuple):
    """查询过滤器与 FileBox 构造函数"""
    room_filter: Callable[[str], Any]
    contact_filter: Callable[[str], Any]
    file_box_from_url: Callable[[str], Any]
    file_box_from_file: Callable[[str], Any]


class WechatySession:
    """单个账号的 Wechaty 会话"""

    def __init__(self, bot: Any, account: ResolvedWeChatAccount, bindings: WechatyBindings):
        self.bot = bot
        self.account = account
        self.bindings = bindings

        self.logged_in = False
        self.user: Any = None
        self.qr_code: Optional[str] = None
        self.qr_status: Optional[int] = None
        self.last_error: Optional[str] = None
        self._login_event = asyncio.Event()
        self._start_task: Optional[asyncio.Task] = None
        self._state_listeners: List[Callable[[bool], None]] = []

        bot.on("scan", self._on_scan)
        bot.on("login", self._on_login)
        bot.on("logout", self._on_logout)
        bot.on("error", self._on_error)

    # ---- 事件 ----

    def qr_url(self, qr_code: Optional[str] = None) -> Optional[str]:
        code = qr_code or self.qr_code
        if not code:
            return None
        return f"{get_settings().WECHAT_QR_URL_BASE}{quote(code, safe='')}"

    def _on_scan(self, qr_code: str, status: Any, data: Optional[str] = None):
        self.qr_code = qr_code
        self.qr_status = int(status)
        logger.info(f"[WeChat] QR Code status: {self.qr_status} (account {self.account.id})")
        if self.qr_status in QR_DISPLAY_STATUSES:
            logger.info(f"[WeChat] Scan QR Code at: {self.qr_url(qr_code)}")

    def _on_login(self, user: Any):
        self.logged_in = True
        self.user = user
        self.qr_code = None
        self._login_event.set()
        self._notify(True)
        logger.info(f"[WeChat] Logged in as {getattr(user, 'name', user)} (account {self.account.id})")

    def _on_logout(self, user: Any, reason: Optional[str] = None):
        self.logged_in = False
        self.user = None
        self._login_event.clear()
        self._notify(False)
        logger.info(f"[WeChat] Logged out: {getattr(user, 'name', user)} (account {self.account.id})")

    def _on_error(self, error: Any):
        self.last_error = str(error)
        logger.error(f"[WeChat] Bot error (account {self.account.id}): {error}")

    def on_message(self, handler: Callable):
        self.bot.on("message", handler)

    def add_state_listener(self, listener: Callable[[bool], None]):
        """登录状态变化回调(True=登录, False=登出)"""
        self._state_listeners.append(listener)

    def _notify(self, logged_in: bool):
        for listener in self._state_listeners:
            listener(logged_in)

    # ---- 生命周期 ----

    @property
    def running(self) -> bool:
        return self._start_task is not None and not self._start_task.done()

    async def start(self):
        """在后台任务中启动 Wechaty(bot.start 会一直运行到停止)"""
        if self.running:
            return
        self._start_task = asyncio.ensure_future(self.bot.start())
        self._start_task.add_done_callback(self._on_start_done)
        # 让启动任务先运行一次,尽早暴露同步失败
        await asyncio.sleep(0)

    def _on_start_done(self, task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.last_error = str(error)
            logger.error(f"[WeChat] Bot for account {self.account.id} exited: {error}")

    async def stop(self):
        await self.bot.stop()
        if self._start_task is not None and not self._start_task.done():
            self._start_task.cancel()
        self._start_task = None
        if self.logged_in:
            self._on_logout(self.user, "stopped")

    async def logout(self):
        await self.bot.logout()
        self._on_logout(self.user, "logout requested")

    async def wait_for_login(self, timeout: float) -> bool:
        """等待扫码登录,超时返回 False"""
        if self.logged_in:
            return True
        try:
            await asyncio.wait_for(self._login_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return self.logged_in

    # ---- 查询 ----

    async def find_room(self, room_id: str) -> Any:
        return await self.bot.Room.find(self.bindings.room_filter(room_id))

    async def find_contact(self, contact_id: str) -> Any:
        return await self.bot.Contact.find(self.bindings.contact_filter(contact_id))

    async def find_all_rooms(self) -> List[Any]:
        return await self.bot.Room.find_all()

    async def find_all_contacts(self) -> List[Any]:
        return await self.bot.Contact.find_all()

    def file_box(self, media: str) -> Any:
        """URL 或本地路径 -> FileBox"""
        if media.startswith(("http://", "https://")):
            return self.bindings.file_box_from_url(media)
        return self.bindings.file_box_from_file(media)


def create_wechaty_session(account: ResolvedWeChatAccount) -> WechatySession:
    """根据账号配置创建 Wechaty 会话(不启动)"""
    from wechaty import Wechaty, WechatyOptions
    from wechaty_puppet import ContactQueryFilter, FileBox, PuppetOptions, RoomQueryFilter

    option_fields = set(getattr(PuppetOptions, "__dataclass_fields__", {}))
    raw_options = {
        "end_point" if key == "endpoint" else _snake_case(key): value
        for key, value in account.puppet_options.items()
    }
    puppet_options = PuppetOptions(**{k: v for k, v in raw_options.items() if k in option_fields})
    ignored = sorted(set(raw_options) - option_fields)
    if ignored:
        logger.warning(f"[WeChat] Ignoring unsupported puppetOptions for account {account.id}: {ignored}")

    bot = Wechaty(WechatyOptions(
        name=f"wxchannels-wechat-{account.id}",
        puppet=account.puppet,
        puppet_options=puppet_options,
    ))
    bindings = WechatyBindings(
        room_filter=lambda room_id: RoomQueryFilter(id=room_id),
        contact_filter=lambda contact_id: ContactQueryFilter(id=contact_id),
        file_box_from_url=lambda url: FileBox.from_url(url, name=url.rsplit("/", 1)[-1] or "media"),
        file_box_from_file=FileBox.from_file,
    )
    return WechatySession(bot, account, bindings)


def _snake_case(name: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in name).lstrip("_")
