"""
企业微信回调服务器(Flask)

独立的Flask进程,监听 WECOM_CALLBACK_PORT(默认8081)
负责:
1. URL验证(GET)
2. 消息接收(POST): 校验签名、解密、转换为 ChannelMessage
3. 在后台线程的事件循环中把消息交给插件注册的处理函数

每个账号一个回调地址: /api/wecom/callback/<account_id>
"""

import asyncio
import json
import logging
import sys
import threading
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from flask import Flask, make_response, request

from wxchannels.channels.base import AccountNotFoundError, ChannelNotConfiguredError, ConfigValidationError
from wxchannels.channels.wecom.plugin import WeComChannelPlugin, get_wecom_plugin
from wxchannels.config.settings import get_settings
from wxchannels.utils.wecom_crypto import WeComCryptoError, parse_message

logger = logging.getLogger(__name__)


def start_event_loop(loop):
    """在独立线程中运行event loop"""
    asyncio.set_event_loop(loop)
    loop.run_forever()


def create_event_loop_thread() -> asyncio.AbstractEventLoop:
    """
    启动常驻事件循环线程

    插件的 httpx 客户端与首次使用它的事件循环绑定,所有回调消息都在这个循环上处理
    """
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=start_event_loop, args=(loop,), daemon=True, name="wecom-event-loop")
    thread.start()
    logger.info("✅ Event loop thread started")
    return loop


def stop_event_loop(loop: asyncio.AbstractEventLoop) -> None:
    loop.call_soon_threadsafe(loop.stop)


def _log_task_failure(future):
    if future.cancelled():
        return
    error = future.exception()
    if error is not None:
        logger.error(f"❌ Async task failed: {type(error).__name__}: {str(error)}", exc_info=error)


def run_async_task(coro, loop: asyncio.AbstractEventLoop):
    """把异步任务提交到常驻事件循环,返回 concurrent.futures.Future"""
    future = asyncio.run_coroutine_threadsafe(coro, loop)
    future.add_done_callback(_log_task_failure)
    return future


def _text_response(body: str, status: int = 200):
    response = make_response(body, status)
    response.headers['Content-Type'] = 'text/plain'
    return response


def create_callback_app(
    plugin: WeComChannelPlugin,
    cfg: Dict[str, Any],
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> Flask:
    """
    创建回调应用

    Args:
        plugin: 企业微信插件(提供账号解析、客户端和消息处理函数)
        cfg: 企业微信渠道原始配置
        loop: 处理消息的常驻事件循环,为空时自动启动一个(见 app.extensions["wecom_event_loop"])
    """
    if loop is None:
        loop = create_event_loop_thread()
    app = Flask(__name__)
    app.extensions["wecom_event_loop"] = loop

    @app.route('/api/wecom/callback/<account_id>', methods=['GET', 'POST'])
    def wecom_callback(account_id: str):
        """企微回调入口"""
        try:
            account = plugin.resolve_account(cfg, account_id)
        except (AccountNotFoundError, ConfigValidationError) as e:
            logger.warning(f"Callback for unknown account {account_id}: {e}")
            return _text_response(str(e), 404)

        if not account.enabled:
            return _text_response(f"Account {account_id} is disabled", 403)

        bot = plugin.bots.get_bot(account)
        msg_signature = request.args.get('msg_signature')
        timestamp = request.args.get('timestamp')
        nonce = request.args.get('nonce')

        if request.method == 'GET':
            echo_str = request.args.get('echostr')
            if not all([msg_signature, timestamp, nonce, echo_str]):
                logger.error("URL validation: Missing parameters")
                return _text_response("Missing parameters", 400)

            try:
                if not bot.verify_webhook_signature(msg_signature, timestamp, nonce, echo_str):
                    logger.error(f"URL validation failed for account {account_id}: bad signature")
                    return _text_response("Verification failed: bad signature", 400)
                decrypted_echo = bot.decrypt_webhook_message(echo_str)
            except ChannelNotConfiguredError as e:
                return _text_response(str(e), 503)
            except WeComCryptoError as e:
                logger.error(f"URL validation failed: {str(e)}")
                return _text_response(f"Verification failed: {str(e)}", 400)

            logger.info(f"✅ URL validation successful for account {account_id}")
            return _text_response(decrypted_echo)

        # 消息接收
        if not all([msg_signature, timestamp, nonce]):
            return _text_response("Missing parameters", 400)

        try:
            envelope = parse_message(request.data.decode('utf-8'))
            encrypted = envelope.get('Encrypt')
            if not encrypted:
                return _text_response("Missing Encrypt", 400)
            if not bot.verify_webhook_signature(msg_signature, timestamp, nonce, encrypted):
                logger.error(f"Message signature mismatch for account {account_id}")
                return _text_response("Invalid signature", 400)
            message = parse_message(bot.decrypt_webhook_message(encrypted))
        except ChannelNotConfiguredError as e:
            return _text_response(str(e), 503)
        except (WeComCryptoError, UnicodeDecodeError) as e:
            logger.error(f"Message decryption failed for account {account_id}: {str(e)}")
            return _text_response(f"Message processing failed: {str(e)}", 400)

        logger.info(
            f"📨 WeCom {message.get('MsgType')} from {message.get('FromUserName')} "
            f"(account {account_id})"
        )
        # 异步处理消息(不阻塞回调响应)
        run_async_task(plugin.handle_webhook_message(account, message), loop)
        return _text_response("success")

    return app


def load_channel_config(path: Optional[str]) -> Dict[str, Any]:
    """
    读取渠道配置文件(JSON)

    文件可以直接是企业微信渠道配置,也可以是 {"wecom": {...}, "wechat": {...}}
    """
    if not path:
        return {}
    with open(path, encoding='utf-8') as f:
        data = json.load(f)
    return data.get('wecom', data) if isinstance(data, dict) else {}


def main():
    """主函数"""
    load_dotenv()
    settings = get_settings()

    # 配置日志
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        cfg = load_channel_config(settings.CHANNEL_CONFIG_FILE)
    except (OSError, ValueError) as e:
        logger.error(f"❌ Failed to load channel config {settings.CHANNEL_CONFIG_FILE}: {e}")
        sys.exit(1)

    plugin = get_wecom_plugin()
    account_ids = plugin.list_account_ids(cfg)
    if not account_ids:
        logger.error("❌ No WeCom accounts configured (set CHANNEL_CONFIG_FILE)")
        sys.exit(1)
    for account_id in account_ids:
        issues = asyncio.run(plugin.collect_status_issues(plugin.resolve_account(cfg, account_id)))
        for issue in issues:
            logger.warning(f"Account {account_id}: {issue}")

    loop = create_event_loop_thread()
    app = create_callback_app(plugin, cfg, loop)
    logger.info(f"🚀 Starting WeChat Work callback server on port {settings.WECOM_CALLBACK_PORT}...")
    try:
        app.run(host=settings.WECOM_CALLBACK_HOST, port=settings.WECOM_CALLBACK_PORT, debug=False, threaded=True)
    except KeyboardInterrupt:
        logger.info("Shutting down WeCom server...")
    finally:
        stop_event_loop(loop)
        logger.info("✅ WeCom server stopped")


if __name__ == '__main__':
    main()
