"""Records produced by the message and upload tasks."""

from typing import Any

from pydantic import BaseModel


class SentMessage(BaseModel):
    """A message Slack accepted: where it went and its server timestamp."""

    channel: str
    ts: str

    @classmethod
    def from_response(cls, body: dict[str, Any], channel: str) -> "SentMessage":
        return cls(channel=str(body.get("channel") or channel), ts=str(body["ts"]))


class UploadedFile(BaseModel):
    """A file Slack stored, with the links used in the announcement."""

    id: str
    name: str
    permalink: str
    permalink_public: str | None = None
    channel: str

    @classmethod
    def from_response(cls, body: dict[str, Any], channel: str) -> "UploadedFile":
        file = body.get("file") or {}
        return cls(
            id=str(file.get("id", "")),
            name=str(file.get("name") or file.get("title") or ""),
            permalink=str(file["permalink"]),
            permalink_public=file.get("permalink_public"),
            channel=channel,
        )
