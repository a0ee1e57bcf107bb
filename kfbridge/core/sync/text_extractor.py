"""
Display text for inbound KF messages.

Non-text messages are rendered as short bracketed descriptions so the
downstream consumer always receives something readable. Media bytes are never
fetched here; media ids travel separately in the envelope.
"""

import json

from kfbridge.messaging.kf.constants import MSGTYPE_EVENT
from kfbridge.messaging.kf.models import KfMessage, MergedMsgItem

CHANNELS_SUB_TYPES = {
    1: "Channels post",
    2: "Channels live",
    3: "Channels profile",
}


def _format_location(message: KfMessage) -> str:
    loc = message.location
    if loc is None:
        return "[Location]"
    parts = " ".join(part for part in (loc.name, loc.address) if part)
    coords = ""
    if loc.latitude is not None and loc.longitude is not None:
        coords = f" ({loc.latitude}, {loc.longitude})"
    if parts:
        return f"[Location: {parts}{coords}]"
    if coords:
        return f"[Location:{coords}]"
    return "[Location]"


def _format_merged_item(item: MergedMsgItem) -> str:
    sender = item.sender_name or "Unknown"
    try:
        parsed = json.loads(item.msg_content or "{}")
    except json.JSONDecodeError:
        return f"{sender}: {item.msg_content or ''}"
    if not isinstance(parsed, dict):
        return f"{sender}: {item.msg_content or ''}"

    text = parsed.get("text")
    if isinstance(text, dict) and text.get("content"):
        content = text["content"]
    elif parsed.get("image"):
        content = "[Image]"
    elif parsed.get("voice"):
        content = "[Voice]"
    elif parsed.get("video"):
        content = "[Video]"
    elif parsed.get("file"):
        content = "[File]"
    elif isinstance(parsed.get("link"), dict):
        content = f"[Link: {parsed['link'].get('title') or ''}]"
    else:
        content = f"[{parsed.get('msgtype') or 'unknown type'}]"
    return f"{sender}: {content}"


def _format_merged(message: KfMessage) -> str:
    merged = message.merged_msg
    if merged is None:
        return "[Forwarded chat history]"
    title = merged.title or "Chat history"
    lines = [_format_merged_item(item) for item in merged.item]
    return "\n".join([f"[Forwarded chat history: {title}]", *lines])


def _format_menu(message: KfMessage) -> str:
    menu = message.msgmenu
    if menu is None:
        return "[Menu message: ]"
    options = ", ".join(item.content or item.id for item in menu.items)
    if menu.head_content:
        return f"{menu.head_content} [Options: {options}]"
    return f"[Menu message: {options}]"


def extract_text(message: KfMessage) -> str | None:
    """
    Render a message as display text.

    Returns:
        The text, "" for an empty text message, or None for events
    """
    msgtype = message.msgtype

    if msgtype == "text":
        return message.text.content if message.text else ""
    if msgtype == "image":
        return "[User sent an image]"
    if msgtype == "voice":
        return "[User sent a voice message]"
    if msgtype == "video":
        return "[User sent a video]"
    if msgtype == "file":
        return "[User sent a file]"
    if msgtype == "location":
        return _format_location(message)
    if msgtype == "link":
        link = message.link
        title = link.title if link and link.title else ""
        url = link.url if link and link.url else ""
        return f"[Link: {title} {url}]"
    if msgtype == "merged_msg":
        return _format_merged(message)
    if msgtype == "channels":
        channels = message.channels
        sub_type = channels.sub_type if channels else None
        type_name = CHANNELS_SUB_TYPES.get(sub_type, "Channels message")
        nickname = channels.nickname if channels and channels.nickname else ""
        title = channels.title if channels and channels.title else ""
        return f"[{type_name}] {nickname}: {title}"
    if msgtype == "miniprogram":
        mp = message.miniprogram
        title = mp.title if mp and mp.title else ""
        appid = mp.appid if mp and mp.appid else ""
        return f"[Mini program] {title} (appid: {appid})"
    if msgtype == "msgmenu":
        return _format_menu(message)
    if msgtype == "business_card":
        card = message.business_card
        return f"[Business card] userid: {card.userid if card and card.userid else ''}"
    if msgtype == MSGTYPE_EVENT:
        return None
    return f"[Unsupported message type: {msgtype}]"
