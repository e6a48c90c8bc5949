"""
企业微信回调服务器测试(Flask test client)
"""

import asyncio
import base64
import json
import queue
from unittest.mock import patch

import httpx
import pytest

from wxchannels.channels.runtime import ChannelRuntime
from wxchannels.channels.wecom.client import WeComApiClient
from wxchannels.channels.wecom.plugin import WeComChannelPlugin
from wxchannels.channels.wecom.server import (
    create_callback_app,
    create_event_loop_thread,
    load_channel_config,
    stop_event_loop,
)
from wxchannels.config.settings import Settings
from wxchannels.utils.wecom_crypto import compute_signature, encrypt_message

AES_KEY = base64.b64encode(b"k" * 32).decode().rstrip("=")
TOKEN = "callback-token"
CORP_ID = "ww-corp"
URL = "/api/wecom/callback/default"


@pytest.fixture
def cfg():
    return {
        "accounts": {
            "default": {
                "corpId": CORP_ID,
                "agentId": 1000002,
                "secret": "s",
                "webhookToken": TOKEN,
                "encodingAESKey": AES_KEY,
            },
            "off": {"enabled": False, "corpId": CORP_ID},
            "bare": {"corpId": CORP_ID},
        }
    }


class FakeSendApi:
    """模拟企微 gettoken / message/send"""

    def __init__(self):
        self.sent = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/gettoken"):
            return httpx.Response(200, json={"errcode": 0, "access_token": "T", "expires_in": 7200})
        self.sent.append(json.loads(request.content))
        return httpx.Response(200, json={"errcode": 0, "errmsg": "ok", "msgid": f"m{len(self.sent)}"})


@pytest.fixture
def api():
    return FakeSendApi()


@pytest.fixture
def plugin(api):
    runtime = ChannelRuntime(
        lambda account: WeComApiClient(
            account,
            api_base_url="https://qyapi.test/cgi-bin",
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(api)),
        ),
        settings=Settings(),
    )
    return WeComChannelPlugin(runtime=runtime)


@pytest.fixture
def loop():
    loop = create_event_loop_thread()
    yield loop
    stop_event_loop(loop)


@pytest.fixture
def client(plugin, cfg, loop):
    app = create_callback_app(plugin, cfg, loop)
    app.config["TESTING"] = True
    return app.test_client()


def _signed_query(payload, timestamp="1700000000", nonce="nonce123"):
    return {
        "msg_signature": compute_signature(TOKEN, timestamp, nonce, payload),
        "timestamp": timestamp,
        "nonce": nonce,
    }


class TestUrlVerification:
    def test_echo(self, client):
        echo = encrypt_message("echo-42", AES_KEY, CORP_ID)
        query = _signed_query(echo)
        query["echostr"] = echo
        response = client.get(URL, query_string=query)
        assert response.status_code == 200
        assert response.get_data(as_text=True) == "echo-42"

    def test_missing_parameters(self, client):
        response = client.get(URL, query_string={"timestamp": "1"})
        assert response.status_code == 400

    def test_bad_signature(self, client):
        echo = encrypt_message("echo-42", AES_KEY, CORP_ID)
        query = _signed_query(echo)
        query["echostr"] = echo
        query["msg_signature"] = "0" * 40
        assert client.get(URL, query_string=query).status_code == 400

    def test_unknown_account(self, client):
        assert client.get("/api/wecom/callback/nobody").status_code == 404

    def test_disabled_account(self, client):
        assert client.get("/api/wecom/callback/off").status_code == 403

    def test_account_without_token(self, client):
        query = _signed_query("x")
        query["echostr"] = "x"
        assert client.get("/api/wecom/callback/bare", query_string=query).status_code == 503


class TestMessageCallback:
    def _envelope(self, inner_xml):
        encrypted = encrypt_message(inner_xml, AES_KEY, CORP_ID)
        body = f"<xml><ToUserName><![CDATA[{CORP_ID}]]></ToUserName><Encrypt><![CDATA[{encrypted}]]></Encrypt></xml>"
        return body, _signed_query(encrypted)

    def _text_xml(self, content, msg_id):
        return (
            "<xml><ToUserName>ww-corp</ToUserName><FromUserName>zhangsan</FromUserName>"
            f"<CreateTime>1700000000</CreateTime><MsgType>text</MsgType>"
            f"<Content>{content}</Content><MsgId>{msg_id}</MsgId><AgentID>1000002</AgentID></xml>"
        )

    def test_message_dispatched(self, client, plugin):
        received = queue.Queue()
        plugin.register_message_handler(received.put)
        body, query = self._envelope(self._text_xml("你好", "1001"))

        response = client.post(URL, query_string=query, data=body.encode("utf-8"))

        assert response.status_code == 200
        assert response.get_data(as_text=True) == "success"
        message = received.get(timeout=5)
        assert message.sender_id == "zhangsan"
        assert message.content == "你好"
        assert message.message_id == "1001"

    def test_replies_share_one_event_loop(self, client, plugin, cfg, api, loop):
        """多条回调在同一个常驻事件循环上处理,插件的客户端可以反复回复"""
        handled = queue.Queue()

        async def reply(message):
            await plugin.send_text(cfg, message.sender_id, f"echo {message.content}")
            handled.put(asyncio.get_running_loop())

        plugin.register_message_handler(reply)
        for i in range(3):
            body, query = self._envelope(self._text_xml(f"m{i}", str(2000 + i)))
            assert client.post(URL, query_string=query, data=body.encode("utf-8")).status_code == 200
            assert handled.get(timeout=5) is loop

        assert not loop.is_closed()
        assert [m["text"]["content"] for m in api.sent] == ["echo m0", "echo m1", "echo m2"]
        assert all(m["touser"] == "zhangsan" for m in api.sent)

    def test_bad_signature_rejected(self, client):
        body, query = self._envelope("<xml><MsgType>text</MsgType></xml>")
        query["msg_signature"] = "0" * 40
        with patch("wxchannels.channels.wecom.server.run_async_task") as run:
            response = client.post(URL, query_string=query, data=body)
        assert response.status_code == 400
        run.assert_not_called()

    def test_missing_encrypt(self, client):
        response = client.post(URL, query_string=_signed_query(""), data="<xml><ToUserName>x</ToUserName></xml>")
        assert response.status_code == 400

    def test_malformed_body(self, client):
        response = client.post(URL, query_string=_signed_query("x"), data="not xml")
        assert response.status_code == 400


class TestLoadChannelConfig:
    def test_nested_wecom_section(self, tmp_path):
        path = tmp_path / "channels.json"
        path.write_text(json.dumps({"wecom": {"accounts": {"a": {}}}, "wechat": {}}), encoding="utf-8")
        assert load_channel_config(str(path)) == {"accounts": {"a": {}}}

    def test_plain_file(self, tmp_path):
        path = tmp_path / "wecom.json"
        path.write_text(json.dumps({"accounts": {"b": {}}}), encoding="utf-8")
        assert load_channel_config(str(path)) == {"accounts": {"b": {}}}

    def test_no_path(self):
        assert load_channel_config(None) == {}
