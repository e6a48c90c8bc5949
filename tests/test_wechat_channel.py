"""
个人微信渠道测试

使用内存中的 Wechaty 替身(FakeWechaty / FakeRoom / FakeContact),覆盖:
- WechatySession: 事件、扫码、登录等待、启停
- 会话管理、发送、目标解析、入站消息转换
- 探测与审计
- 插件端到端
"""

import asyncio
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from wxchannels.channels.base import ChannelNotConfiguredError, TargetNotFoundError
from wxchannels.channels.registry import InstanceRegistry
from wxchannels.channels.wechat.accounts import ResolvedWeChatAccount
from wxchannels.channels.wechat.audit import audit_wechat_account, generate_wechat_audit_summary
from wxchannels.channels.wechat.bot import WeChatBotManager
from wxchannels.channels.wechat.bot_handlers import wechat_message_to_channel_message
from wxchannels.channels.wechat.plugin import WeChatChannelPlugin
from wxchannels.channels.wechat.probe import probe_wechat_connection
from wxchannels.channels.wechat.send import send_wechat_file, send_wechat_media, send_wechat_text
from wxchannels.channels.wechat.session import WechatyBindings, WechatySession
from wxchannels.channels.wechat.targets import get_all_wechat_targets, resolve_wechat_target, search_wechat_targets
from wxchannels.config.settings import Settings


# ==================== Wechaty 替身 ====================

class FakeContact:
    def __init__(self, contact_id, name):
        self.contact_id = contact_id
        self.name = name
        self.say = AsyncMock()


class FakeRoom:
    def __init__(self, room_id, topic):
        self.room_id = room_id
        self._topic = topic
        self.say = AsyncMock()

    async def topic(self):
        return self._topic


class FakeFinder:
    def __init__(self, items):
        self.items = {getattr(item, "room_id", None) or item.contact_id: item for item in items}

    async def find(self, query):
        return self.items.get(query)

    async def find_all(self):
        return list(self.items.values())


class FakeWechaty:
    def __init__(self, rooms=(), contacts=()):
        self.handlers = {}
        self.Room = FakeFinder(rooms)
        self.Contact = FakeFinder(contacts)
        self.start = AsyncMock()
        self.stop = AsyncMock()
        self.logout = AsyncMock()

    def on(self, event, handler):
        self.handlers[event] = handler

    async def emit(self, event, *args):
        result = self.handlers[event](*args)
        if asyncio.iscoroutine(result):
            await result


class FakeMessage:
    def __init__(self, talker, room=None, text="hello", mentions=(), type_name="MESSAGE_TYPE_TEXT"):
        self.message_id = "msg-1"
        self._talker = talker
        self._room = room
        self._text = text
        self._mentions = list(mentions)
        self._type = SimpleNamespace(name=type_name)

    def talker(self):
        return self._talker

    def room(self):
        return self._room

    def text(self):
        return self._text

    def type(self):
        return self._type

    def date(self):
        return datetime(2024, 1, 1, 12, 0, 0)

    async def mention_list(self):
        return self._mentions


BINDINGS = WechatyBindings(
    room_filter=lambda room_id: room_id,
    contact_filter=lambda contact_id: contact_id,
    file_box_from_url=lambda url: ("url", url),
    file_box_from_file=lambda path: ("file", path),
)

ME = FakeContact("wxid_bot", "机器人")
ALICE = FakeContact("wxid_alice", "Alice")
ROOM = FakeRoom("room1@chatroom", "项目群")


def make_account(**overrides):
    fields = {"id": "default", "name": "WeChat default"}
    fields.update(overrides)
    return ResolvedWeChatAccount(**fields)


def make_session(account=None):
    bot = FakeWechaty(rooms=[ROOM], contacts=[ME, ALICE])
    return WechatySession(bot, account or make_account(), BINDINGS)


@pytest.fixture(autouse=True)
def reset_fakes():
    for item in (ME, ALICE, ROOM):
        item.say.reset_mock()


# ==================== 会话 ====================

class TestWechatySession:
    def test_registers_event_handlers(self):
        session = make_session()
        assert set(session.bot.handlers) == {"scan", "login", "logout", "error"}

    @pytest.mark.asyncio
    async def test_scan_sets_qr_url(self):
        session = make_session()
        await session.bot.emit("scan", "https://login.weixin.qq.com/l/abc", 2, None)
        assert session.qr_status == 2
        assert session.qr_url() == "https://wechaty.js.org/qrcode/https%3A%2F%2Flogin.weixin.qq.com%2Fl%2Fabc"

    @pytest.mark.asyncio
    async def test_login_logout_events(self):
        session = make_session()
        states = []
        session.add_state_listener(states.append)

        await session.bot.emit("scan", "qr", 2, None)
        await session.bot.emit("login", ME)
        assert session.logged_in is True
        assert session.user is ME
        assert session.qr_code is None

        await session.bot.emit("logout", ME, "bye")
        assert session.logged_in is False
        assert states == [True, False]

    @pytest.mark.asyncio
    async def test_wait_for_login(self):
        session = make_session()
        assert await session.wait_for_login(0.01) is False

        async def login_later():
            await asyncio.sleep(0)
            await session.bot.emit("login", ME)

        results = await asyncio.gather(session.wait_for_login(1), login_later())
        assert results[0] is True

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        session = make_session()
        await session.start()
        session.bot.start.assert_awaited_once()

        await session.bot.emit("login", ME)
        await session.stop()
        session.bot.stop.assert_awaited_once()
        assert session.logged_in is False

    @pytest.mark.asyncio
    async def test_error_event(self):
        session = make_session()
        await session.bot.emit("error", RuntimeError("puppet down"))
        assert session.last_error == "puppet down"

    def test_file_box(self):
        session = make_session()
        assert session.file_box("https://cdn/a.png") == ("url", "https://cdn/a.png")
        assert session.file_box("/tmp/a.png") == ("file", "/tmp/a.png")


# ==================== 会话管理 ====================

class TestWeChatBotManager:
    @pytest.mark.asyncio
    async def test_start_skips_when_logged_in(self):
        manager = WeChatBotManager(InstanceRegistry(make_session))
        bot = manager.get_bot(make_account())
        await bot.bot.emit("login", ME)
        assert await manager.start_bot(make_account()) is bot
        bot.bot.start.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stop_removes_even_when_not_logged_in(self):
        manager = WeChatBotManager(InstanceRegistry(make_session))
        bot = manager.get_bot(make_account())
        await manager.stop_bot("default")
        assert not manager.has_bot("default")
        bot.bot.stop.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_stop_while_waiting_for_scan(self):
        """已启动但未扫码的会话也要停止,再次获取时只有一个新实例"""
        manager = WeChatBotManager(InstanceRegistry(make_session))
        bot = manager.get_bot(make_account())
        bot.bot.start.side_effect = asyncio.Event().wait
        await bot.start()
        assert bot.running and not bot.logged_in

        await manager.stop_bot("default")

        bot.bot.stop.assert_awaited_once()
        assert not bot.running
        assert not manager.has_bot("default")
        fresh = manager.get_bot(make_account())
        assert fresh is not bot
        assert len(manager.registry) == 1

    @pytest.mark.asyncio
    async def test_stop_failure_still_removes(self):
        manager = WeChatBotManager(InstanceRegistry(make_session))
        bot = manager.get_bot(make_account())
        await bot.bot.emit("login", ME)
        bot.bot.stop.side_effect = RuntimeError("puppet gone")
        with pytest.raises(RuntimeError):
            await manager.stop_bot("default")
        assert not manager.has_bot("default")

    @pytest.mark.asyncio
    async def test_logout(self):
        manager = WeChatBotManager(InstanceRegistry(make_session))
        assert await manager.logout_bot("default") is False
        bot = manager.get_bot(make_account())
        await bot.bot.emit("login", ME)
        assert await manager.logout_bot("default") is True
        assert bot.logged_in is False
        assert manager.has_bot("default")


# ==================== 发送与目标 ====================

class TestSendAndTargets:
    @pytest.mark.asyncio
    async def test_send_to_room_first(self):
        message_id = await send_wechat_text(make_session(), "room1@chatroom", "大家好")
        ROOM.say.assert_awaited_once_with("大家好")
        assert message_id.startswith("wechat-")

    @pytest.mark.asyncio
    async def test_send_to_contact(self):
        await send_wechat_text(make_session(), "wxid_alice", "hi")
        ALICE.say.assert_awaited_once_with("hi")

    @pytest.mark.asyncio
    async def test_unknown_target(self):
        with pytest.raises(TargetNotFoundError, match="WeChat target not found: ghost"):
            await send_wechat_text(make_session(), "ghost", "hi")

    @pytest.mark.asyncio
    async def test_send_media_with_caption(self):
        await send_wechat_media(make_session(), "wxid_alice", "https://cdn/a.png", "看这个")
        assert [c.args[0] for c in ALICE.say.await_args_list] == [("url", "https://cdn/a.png"), "看这个"]

    @pytest.mark.asyncio
    async def test_send_file(self):
        await send_wechat_file(make_session(), "room1@chatroom", "/tmp/report.pdf")
        ROOM.say.assert_awaited_once_with(("file", "/tmp/report.pdf"))

    @pytest.mark.asyncio
    async def test_resolve_target(self):
        session = make_session()
        room = await resolve_wechat_target(session, "room1@chatroom")
        assert (room.type, room.name) == ("room", "项目群")
        contact = await resolve_wechat_target(session, "wxid_alice")
        assert (contact.type, contact.name) == ("contact", "Alice")
        assert await resolve_wechat_target(session, "ghost") is None

    @pytest.mark.asyncio
    async def test_all_and_search(self):
        session = make_session()
        assert [e.id for e in await get_all_wechat_targets(session)] == ["room1@chatroom", "wxid_bot", "wxid_alice"]
        assert [e.id for e in await search_wechat_targets(session, "alice")] == ["wxid_alice"]


# ==================== 入站消息 ====================

class TestInboundMessage:
    @pytest.mark.asyncio
    async def test_room_message(self):
        session = make_session()
        await session.bot.emit("login", ME)
        message = await wechat_message_to_channel_message(
            FakeMessage(ALICE, room=ROOM, text="@机器人 在吗", mentions=[ME]), session, make_account()
        )
        assert message.channel == "wechat"
        assert message.message_id == "msg-1"
        assert message.sender_id == "wxid_alice"
        assert message.recipient_id == "wxid_bot"
        assert message.content == "@机器人 在吗"
        assert message.msg_type == "text"
        assert message.timestamp == int(datetime(2024, 1, 1, 12, 0, 0).timestamp() * 1000)
        assert message.metadata == {
            "room": "room1@chatroom",
            "mentions": ["wxid_bot"],
            "message_type": "MESSAGE_TYPE_TEXT",
        }

    @pytest.mark.asyncio
    async def test_direct_message_type_mapping(self):
        message = await wechat_message_to_channel_message(
            FakeMessage(ALICE, type_name="MESSAGE_TYPE_IMAGE"), make_session(), make_account()
        )
        assert message.msg_type == "image"
        assert message.metadata["room"] is None
        assert message.metadata["mentions"] == []

    @pytest.mark.asyncio
    async def test_unknown_type(self):
        message = await wechat_message_to_channel_message(
            FakeMessage(ALICE, type_name="MESSAGE_TYPE_RECALLED"), make_session(), make_account()
        )
        assert message.msg_type == "unknown"


# ==================== 探测与审计 ====================

class TestProbeAndAudit:
    @pytest.mark.asyncio
    async def test_probe_without_bot(self):
        result = await probe_wechat_connection(None)
        assert result.connected is False
        assert result.error == "Bot not started"

    @pytest.mark.asyncio
    async def test_probe_not_logged_in(self):
        result = await probe_wechat_connection(make_session())
        assert result.error == "Not logged in"
        assert result.logged_in is False

    @pytest.mark.asyncio
    async def test_probe_logged_in(self):
        session = make_session()
        await session.bot.emit("login", ME)
        result = await probe_wechat_connection(session)
        assert result.connected is True
        assert result.logged_in is True
        assert result.error is None

    @pytest.mark.asyncio
    async def test_audit_logged_in(self):
        session = make_session()
        await session.bot.emit("login", ME)
        audit = await audit_wechat_account(make_account(), session, config={})
        assert audit.configured is True
        assert audit.logged_in is True
        assert "User is logged in" in audit.info
        assert generate_wechat_audit_summary(audit).startswith("Configured: Yes\nReachable: Yes\nLogged In: Yes")

    @pytest.mark.asyncio
    async def test_audit_not_started(self):
        audit = await audit_wechat_account(make_account(), None, config={})
        assert "Connection error: Bot not started" in audit.errors
        assert "User is not logged in" in audit.warnings
        assert audit.configured is False


# ==================== 插件 ====================

class TestWeChatPlugin:
    def _plugin(self):
        sessions = []

        def factory(account):
            session = make_session(account)
            sessions.append(session)
            return session

        return WeChatChannelPlugin(settings=Settings(), session_factory=factory), sessions

    def test_meta(self):
        plugin, _ = self._plugin()
        assert plugin.meta.id == "wechat"
        assert plugin.meta.aliases == ["wx", "weixin"]
        assert "puppet" in plugin.config_schema["properties"]["accounts"]["additionalProperties"]["properties"]

    @pytest.mark.asyncio
    async def test_status_issues(self):
        plugin, _ = self._plugin()
        assert await plugin.collect_status_issues(make_account()) == []
        assert await plugin.collect_status_issues(make_account(enabled=False)) == ["Account is disabled"]

    @pytest.mark.asyncio
    async def test_qr_login_flow(self):
        plugin, sessions = self._plugin()
        cfg = {"accounts": {"default": {}}}

        start = await plugin.start_account(cfg)
        assert start == {"started": True, "account_id": "default", "logged_in": False}
        session = sessions[0]
        await session.bot.emit("scan", "qr-data", 2, None)

        login = await plugin.login_with_qr_start(cfg)
        assert login["qr_code"] == "qr-data"
        assert login["qr_url"].endswith("qr-data")

        pending = await plugin.login_with_qr_wait(cfg, timeout=0.01)
        assert pending["pending"] is True

        await session.bot.emit("login", ME)
        done = await plugin.login_with_qr_wait(cfg, timeout=0.01)
        assert done["logged_in"] is True
        assert done["qr_url"] is None
        assert plugin.get_metrics("default")["connected"] is True

        me = await plugin.directory_self(cfg)
        assert (me.id, me.name) == ("wxid_bot", "机器人")

        assert await plugin.logout_account("default") == {"logged_out": True, "account_id": "default"}
        assert plugin.get_metrics("default")["connected"] is False

    @pytest.mark.asyncio
    async def test_qr_wait_without_start(self):
        plugin, _ = self._plugin()
        result = await plugin.login_with_qr_wait({"accounts": {"default": {}}})
        assert result["error"] == "Bot not started"

    @pytest.mark.asyncio
    async def test_send_text_chunked(self):
        plugin, _ = self._plugin()
        cfg = {"accounts": {"default": {"textChunkLimit": 5}}}
        result = await plugin.send_text(cfg, "wechat:room1@chatroom", "abcdefghijkl")
        assert result.chunks == 3
        assert [c.args[0] for c in ROOM.say.await_args_list] == ["abcde", "fghij", "kl"]
        assert plugin.get_metrics("default")["messages_sent"] == 3

    @pytest.mark.asyncio
    async def test_send_text_unknown_target_recorded(self):
        plugin, _ = self._plugin()
        with pytest.raises(TargetNotFoundError):
            await plugin.send_text({"accounts": {"default": {}}}, "wx:ghost", "hi")
        assert plugin.get_metrics("default")["last_error"] == "WeChat target not found: ghost"

    @pytest.mark.asyncio
    async def test_send_text_disabled(self):
        plugin, _ = self._plugin()
        with pytest.raises(ChannelNotConfiguredError):
            await plugin.send_text({"accounts": {"default": {"enabled": False}}}, "wxid_alice", "hi")

    @pytest.mark.asyncio
    async def test_send_media(self):
        plugin, _ = self._plugin()
        result = await plugin.send_media({"accounts": {"default": {}}}, "wxid_alice", "/tmp/a.png", text="图")
        assert result.chunks == 2
        assert [c.args[0] for c in ALICE.say.await_args_list] == [("file", "/tmp/a.png"), "图"]

    @pytest.mark.asyncio
    async def test_directory_requires_login(self):
        plugin, sessions = self._plugin()
        cfg = {"accounts": {"default": {}}}
        assert await plugin.list_groups(cfg) == []
        assert await plugin.resolve_target(cfg, "wxid_alice") is None

        await plugin.start_account(cfg)
        await sessions[0].bot.emit("login", ME)
        assert [g.name for g in await plugin.list_groups(cfg)] == ["项目群"]
        assert [p.id for p in await plugin.list_peers(cfg, query="ali")] == ["wxid_alice"]
        assert (await plugin.resolve_target(cfg, "wechat:wxid_alice")).name == "Alice"

    @pytest.mark.asyncio
    async def test_inbound_dispatch(self):
        plugin, sessions = self._plugin()
        received = []
        plugin.register_message_handler(received.append)
        await plugin.start_account({"accounts": {"default": {}}})

        await sessions[0].bot.emit("message", FakeMessage(ALICE, text="你好"))

        assert [m.content for m in received] == ["你好"]
        assert plugin.get_metrics("default")["messages_received"] == 1

    @pytest.mark.asyncio
    async def test_stop_account(self):
        plugin, sessions = self._plugin()
        cfg = {"accounts": {"default": {}}}
        await plugin.start_account(cfg)
        await sessions[0].bot.emit("login", ME)

        assert await plugin.stop_account("default") == {"stopped": True, "account_id": "default"}
        sessions[0].bot.stop.assert_awaited_once()
        assert not plugin.bots.has_bot("default")

    @pytest.mark.asyncio
    async def test_probe_and_audit_via_plugin(self):
        plugin, _ = self._plugin()
        account = plugin.resolve_account({"accounts": {"default": {}}})
        probe = await plugin.probe_account(account)
        assert probe.error == "Bot not started"
        audit = await plugin.audit_account(account, {"accounts": {"default": {}}})
        assert audit.logged_in is False
