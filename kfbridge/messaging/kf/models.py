"""
Pydantic schemas for the WeChat KF API.

Covers the access-token, sync_msg and send_msg payloads. Message sections the
platform may add later are tolerated (extra="allow") so a new message type
never breaks page parsing.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ApiResponse(BaseModel):
    """Envelope fields every platform response carries."""

    model_config = ConfigDict(extra="allow")

    errcode: int = 0
    errmsg: str = ""


class AccessTokenResponse(ApiResponse):
    access_token: str = ""
    expires_in: int = 0


class TextSection(BaseModel):
    content: str = ""
    menu_id: str | None = None


class MediaSection(BaseModel):
    media_id: str = ""


class LocationSection(BaseModel):
    latitude: float | None = None
    longitude: float | None = None
    name: str | None = None
    address: str | None = None


class LinkSection(BaseModel):
    title: str | None = None
    desc: str | None = None
    url: str | None = None
    pic_url: str | None = None


class EventSection(BaseModel):
    model_config = ConfigDict(extra="allow")

    event_type: str | None = None
    open_kfid: str | None = None
    external_userid: str | None = None
    scene: str | None = None
    scene_param: str | None = None
    welcome_code: str | None = None
    fail_msgid: str | None = None
    fail_type: int | None = None
    servicer_userid: str | None = None
    status: int | None = None


class MergedMsgItem(BaseModel):
    sender_name: str | None = None
    msg_content: str | None = None
    send_time: int | None = None
    msgtype: str | None = None


class MergedMsgSection(BaseModel):
    title: str | None = None
    item: list[MergedMsgItem] = Field(default_factory=list)


class ChannelsSection(BaseModel):
    nickname: str | None = None
    title: str | None = None
    sub_type: int | None = None


class MiniprogramSection(BaseModel):
    title: str | None = None
    appid: str | None = None
    pagepath: str | None = None
    thumb_media_id: str | None = None


class MenuItem(BaseModel):
    id: str = ""
    content: str | None = None


class MsgMenuSection(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    head_content: str | None = None
    items: list[MenuItem] = Field(default_factory=list, alias="list")
    tail_content: str | None = None


class BusinessCardSection(BaseModel):
    userid: str | None = None


class KfMessage(BaseModel):
    """One message returned by sync_msg."""

    model_config = ConfigDict(extra="allow")

    msgid: str
    open_kfid: str = ""
    external_userid: str = ""
    send_time: int = 0
    origin: int = 0  # 3=customer, 4=system, 5=servicer
    servicer_userid: str | None = None
    msgtype: str = ""

    text: TextSection | None = None
    image: MediaSection | None = None
    voice: MediaSection | None = None
    video: MediaSection | None = None
    file: MediaSection | None = None
    location: LocationSection | None = None
    link: LinkSection | None = None
    event: EventSection | None = None
    merged_msg: MergedMsgSection | None = None
    channels: ChannelsSection | None = None
    miniprogram: MiniprogramSection | None = None
    msgmenu: MsgMenuSection | None = None
    business_card: BusinessCardSection | None = None

    @property
    def media_refs(self) -> list[str]:
        """media_id of the image/voice/video/file section, if any."""
        for section in (self.image, self.voice, self.video, self.file):
            if section is not None and section.media_id:
                return [section.media_id]
        return []


class SyncMsgRequest(BaseModel):
    """sync_msg request: either a cursor or the one-shot callback token."""

    cursor: str | None = None
    token: str | None = None
    limit: int = Field(1000, ge=1, le=1000)
    voice_format: int | None = None
    open_kfid: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SyncMsgResponse(ApiResponse):
    next_cursor: str = ""
    has_more: int = 0
    msg_list: list[KfMessage] = Field(default_factory=list)

    @property
    def more(self) -> bool:
        return self.has_more == 1


class SendMsgResponse(ApiResponse):
    msgid: str = ""
