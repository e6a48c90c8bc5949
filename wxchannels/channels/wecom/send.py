"""
企业微信消息发送

接收者字段由目标类型决定: user -> touser, department -> toparty, tag -> totag。
"""

from typing import Any, Dict, Optional, Union

from wxchannels.channels.wecom.client import WeComApiClient
from wxchannels.channels.wecom.format import WeComTargetType

MEDIA_TYPES = ("image", "voice", "video", "file")

_RECIPIENT_KEYS = {
    WeComTargetType.USER: "touser",
    WeComTargetType.DEPARTMENT: "toparty",
    WeComTargetType.TAG: "totag",
}


def build_recipient(target_id: str, target_type: Union[str, WeComTargetType] = WeComTargetType.USER) -> Dict[str, str]:
    return {_RECIPIENT_KEYS[WeComTargetType(target_type)]: target_id}


async def send_wecom_text(
    bot: WeComApiClient,
    target_id: str,
    text: str,
    target_type: Union[str, WeComTargetType] = WeComTargetType.USER,
) -> Dict[str, Any]:
    """发送文本消息"""
    payload = build_recipient(target_id, target_type)
    payload.update({"msgtype": "text", "text": {"content": text}})
    return await bot.send_message(payload)


async def send_wecom_markdown(
    bot: WeComApiClient,
    target_id: str,
    markdown: str,
    target_type: Union[str, WeComTargetType] = WeComTargetType.USER,
) -> Dict[str, Any]:
    """发送Markdown消息"""
    payload = build_recipient(target_id, target_type)
    payload.update({"msgtype": "markdown", "markdown": {"content": markdown}})
    return await bot.send_message(payload)


async def send_wecom_media(
    bot: WeComApiClient,
    target_id: str,
    media_type: str,
    media_id: str,
    target_type: Union[str, WeComTargetType] = WeComTargetType.USER,
) -> Dict[str, Any]:
    """发送图片/语音/视频/文件消息"""
    if media_type not in MEDIA_TYPES:
        raise ValueError(f"Unsupported media type: {media_type}")
    payload = build_recipient(target_id, target_type)
    payload.update({"msgtype": media_type, media_type: {"media_id": media_id}})
    return await bot.send_message(payload)


async def send_wecom_text_card(
    bot: WeComApiClient,
    target_id: str,
    title: str,
    description: str,
    url: str,
    btn_text: Optional[str] = None,
    target_type: Union[str, WeComTargetType] = WeComTargetType.USER,
) -> Dict[str, Any]:
    """发送文本卡片消息"""
    card = {"title": title, "description": description, "url": url}
    if btn_text:
        card["btntxt"] = btn_text
    payload = build_recipient(target_id, target_type)
    payload.update({"msgtype": "textcard", "textcard": card})
    return await bot.send_message(payload)


async def upload_wecom_media(
    bot: WeComApiClient,
    media_type: str,
    file_path: Optional[str] = None,
    content: Optional[bytes] = None,
    filename: Optional[str] = None,
) -> str:
    """上传临时素材,返回 media_id"""
    if media_type not in MEDIA_TYPES:
        raise ValueError(f"Unsupported media type: {media_type}")
    response = await bot.upload_media(media_type, file_path=file_path, content=content, filename=filename)
    return response["media_id"]
