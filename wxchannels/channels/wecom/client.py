"""
企业微信 API 客户端

封装企业微信API调用,负责:
1. Access Token管理(过期前60秒刷新,并发刷新合并为一次请求)
2. 消息发送
3. 媒体文件上传/下载
4. 用户、部门信息查询
5. 回调签名校验与消息解密
"""

import asyncio
import logging
import os
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import aiofiles
import httpx

from wxchannels.channels.base import (
    ChannelAdapterError,
    ChannelNotConfiguredError,
    CredentialError,
    TransportError,
)
from wxchannels.channels.wecom.accounts import ResolvedWeComAccount
from wxchannels.config.settings import get_settings
from wxchannels.utils.wecom_crypto import decrypt_message, verify_signature

logger = logging.getLogger(__name__)

# 提前60秒视为过期,避免临界情况
TOKEN_EXPIRY_MARGIN_SECONDS = 60
DEFAULT_TOKEN_TTL_SECONDS = 7200


class WeComAPIError(ChannelAdapterError):
    """企业微信 API 返回非零 errcode"""

    def __init__(self, errcode: int, errmsg: str, operation: Optional[str] = None):
        self.errcode = errcode
        self.errmsg = errmsg
        self.operation = operation
        prefix = f"Failed to {operation}" if operation else "WeCom API error"
        super().__init__(f"{prefix}: {errmsg} ({errcode})")


class WeComApiClient:
    """企业微信 API 客户端(每个账号一个实例)"""

    def __init__(
        self,
        account: ResolvedWeComAccount,
        api_base_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        初始化企微客户端

        Args:
            account: 已解析的账号配置
            api_base_url: API基础URL,默认取 settings.WECOM_API_BASE_URL
            http_client: 外部传入的 httpx 客户端(测试时使用 MockTransport)
            clock: 时间函数(秒)
        """
        self.account = account
        self.api_base_url = (api_base_url or get_settings().WECOM_API_BASE_URL).rstrip("/")
        self._http = http_client
        self._owns_http = http_client is None
        self._clock = clock

        self._token: Optional[str] = None
        self._expires_at: Optional[float] = None
        self._refresh_task: Optional[asyncio.Future] = None

        # 静态配置的 access token 不设过期时间,直到被 invalidate
        if account.access_token:
            self._token = account.access_token

    @property
    def http(self) -> httpx.AsyncClient:
        """延迟创建 httpx 客户端"""
        if self._http is None:
            self._http = httpx.AsyncClient(
                timeout=self.account.timeout_seconds,
                verify=self.account.verify_ssl,
                proxy=self.account.proxy or None,
            )
        return self._http

    # ---- access token ----

    def _is_token_valid(self) -> bool:
        if not self._token:
            return False
        if self._expires_at is None:
            return True
        return self._clock() < self._expires_at - TOKEN_EXPIRY_MARGIN_SECONDS

    @property
    def has_access_token(self) -> bool:
        return self._is_token_valid()

    async def get_access_token(self, force_refresh: bool = False) -> str:
        """
        获取有效的access_token

        缓存有效时不发起网络请求;同一客户端上的并发调用共享同一个刷新任务,
        刷新失败时所有等待者都收到同一个异常,下一次调用重新刷新。

        Raises:
            CredentialError: 平台拒绝签发 token 或未配置 secret
            TransportError: 网络错误
        """
        can_refresh = bool(self.account.secret)
        if self._is_token_valid() and not (force_refresh and can_refresh):
            return self._token

        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.ensure_future(self._fetch_token())
        task = self._refresh_task
        try:
            return await asyncio.shield(task)
        finally:
            if task.done() and self._refresh_task is task:
                self._refresh_task = None

    async def _fetch_token(self) -> str:
        """从企微API获取access_token"""
        if not self.account.secret:
            raise CredentialError("No secret configured")

        data = await self._send(
            "GET",
            "/gettoken",
            params={"corpid": self.account.corp_id, "corpsecret": self.account.secret},
        )
        errcode = data.get("errcode", 0)
        if errcode != 0:
            errmsg = data.get("errmsg", "Unknown error")
            logger.error(f"Access token rejected for account {self.account.id}: {errmsg} ({errcode})")
            raise CredentialError(errmsg, errcode)

        expires_in = data.get("expires_in") or DEFAULT_TOKEN_TTL_SECONDS
        self._token = data["access_token"]
        self._expires_at = self._clock() + expires_in
        logger.info(f"Access token refreshed for account {self.account.id}, expires in {expires_in}s")
        return self._token

    def invalidate_token(self):
        """使token失效,强制下次重新获取"""
        self._token = None
        self._expires_at = None
        logger.info(f"Access token invalidated for account {self.account.id}")

    # ---- HTTP ----

    async def _send(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> Dict[str, Any]:
        url = f"{self.api_base_url}{path}"
        try:
            response = await self.http.request(method, url, params=params, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise TransportError(f"HTTP error! status: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise TransportError(f"{method} {path} failed: {e}") from e
        except ValueError as e:
            raise TransportError(f"{method} {path} returned invalid JSON: {e}") from e

    async def _request(
        self,
        method: str,
        path: str,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
        **kwargs,
    ) -> Dict[str, Any]:
        """
        带 access_token 的请求,非零 errcode 一律视为错误

        Raises:
            WeComAPIError: API返回错误
        """
        access_token = await self.get_access_token()
        query = {"access_token": access_token}
        query.update(params or {})

        data = await self._send(method, path, params=query, **kwargs)
        errcode = data.get("errcode", 0)
        if errcode != 0:
            raise WeComAPIError(errcode, data.get("errmsg", "Unknown error"), operation)
        return data

    # ---- API ----

    def _agent_id_value(self):
        agent_id = self.account.agent_id
        return int(agent_id) if agent_id.isdigit() else agent_id

    async def send_message(self, message_data: Dict[str, Any]) -> Dict[str, Any]:
        """
        发送消息通用接口

        Args:
            message_data: 消息数据(符合企微API格式),缺少 agentid 时自动补上

        Returns:
            API响应数据(可能包含 invaliduser/invalidparty/invalidtag)
        """
        payload = dict(message_data)
        payload.setdefault("agentid", self._agent_id_value())

        recipient = payload.get("touser") or payload.get("toparty") or payload.get("totag") or "N/A"
        logger.info(f"Sending message: type={payload.get('msgtype')}, to={str(recipient)[:20]}")

        response = await self._request("POST", "/message/send", "send message", json=payload)
        logger.info(f"Message sent successfully, msgid: {response.get('msgid')}")
        return response

    async def get_user_info(self, userid: str) -> Dict[str, Any]:
        """获取用户详细信息"""
        response = await self._request("GET", "/user/get", "get user info", params={"userid": userid})
        logger.debug(f"Retrieved user info for {userid}")
        return response

    async def get_department_list(self, department_id: Optional[int] = None) -> List[Dict[str, Any]]:
        """获取部门列表,指定 department_id 时返回该部门及其子部门"""
        params = {"id": department_id} if department_id else None
        response = await self._request("GET", "/department/list", "get department info", params=params)
        return response.get("department", [])

    async def upload_media(
        self,
        media_type: str,
        file_path: Optional[str] = None,
        content: Optional[bytes] = None,
        filename: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        上传临时素材

        Args:
            media_type: 媒体文件类型(image/voice/video/file)
            file_path: 本地文件路径
            content: 文件内容(与 file_path 二选一)
            filename: 上传时使用的文件名

        Returns:
            {"type", "media_id", "created_at", ...}
        """
        if file_path is not None:
            async with aiofiles.open(file_path, "rb") as f:
                content = await f.read()
            filename = filename or os.path.basename(file_path)
        if content is None:
            raise ValueError("upload_media requires file_path or content")

        response = await self._request(
            "POST",
            "/media/upload",
            "upload media",
            params={"type": media_type},
            files={"media": (filename or "media", content)},
        )
        logger.info(f"Uploaded media: {filename}, media_id: {response.get('media_id')}")
        return response

    async def download_media(self, url: str, max_bytes: Optional[int] = None) -> Tuple[bytes, Optional[str]]:
        """
        下载远程媒体文件

        Returns:
            (内容, content-type)

        Raises:
            ValueError: 超过 max_bytes
            TransportError: 网络错误
        """
        try:
            response = await self.http.get(url, follow_redirects=True)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(f"HTTP error! status: {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"Failed to download {url}: {e}") from e

        content = response.content
        if max_bytes is not None and len(content) > max_bytes:
            raise ValueError(f"Media too large: {len(content)} bytes (limit {max_bytes})")
        return content, response.headers.get("content-type")

    # ---- 回调 ----

    def verify_webhook_signature(self, signature: str, timestamp: str, nonce: str, payload: str) -> bool:
        """校验回调签名(payload 为 echostr 或 Encrypt 字段)"""
        if not self.account.webhook_token:
            raise ChannelNotConfiguredError(f"webhookToken not configured for account {self.account.id}")
        return verify_signature(signature, self.account.webhook_token, timestamp, nonce, payload)

    def decrypt_webhook_message(self, encrypted: str) -> str:
        """解密回调消息体"""
        if not self.account.encoding_aes_key:
            raise ChannelNotConfiguredError(f"encodingAESKey not configured for account {self.account.id}")
        return decrypt_message(encrypted, self.account.encoding_aes_key, self.account.corp_id)

    async def aclose(self):
        if self._http is not None and self._owns_http:
            await self._http.aclose()
        self._http = None
