"""Last.fm response schemas and the normalised track snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

PLACEHOLDER_IMAGE_URL = "https://via.placeholder.com/64"


@dataclass(slots=True, frozen=True)
class RecentTrack:
    """One entry of a user's recent listening history."""

    track_id: str
    title: str
    artist: str
    album: str = ""
    image_url: str = PLACEHOLDER_IMAGE_URL
    now_playing: bool = False

    @property
    def status_text(self) -> str:
        return f"{self.title} - {self.artist}"


class _TextNode(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: str = Field(default="", alias="#text")


class _ImageNode(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    size: str = ""
    url: str = Field(default="", alias="#text")


class _TrackAttributes(BaseModel):
    model_config = ConfigDict(extra="ignore")

    nowplaying: str | None = None


class LastfmTrackPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str = ""
    mbid: str = ""
    artist: _TextNode = Field(default_factory=_TextNode)
    album: _TextNode = Field(default_factory=_TextNode)
    image: list[_ImageNode] = Field(default_factory=list)
    attributes: _TrackAttributes | None = Field(default=None, alias="@attr")

    @field_validator("mbid", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    def to_track(self) -> RecentTrack:
        image_url = next(
            (image.url for image in self.image if image.size == "medium" and image.url),
            PLACEHOLDER_IMAGE_URL,
        )
        return RecentTrack(
            track_id=self.mbid.strip(),
            title=self.name,
            artist=self.artist.text,
            album=self.album.text,
            image_url=image_url,
            now_playing=bool(self.attributes and self.attributes.nowplaying == "true"),
        )


class _RecentTracksNode(BaseModel):
    model_config = ConfigDict(extra="ignore")

    track: list[LastfmTrackPayload] = Field(default_factory=list)

    @field_validator("track", mode="before")
    @classmethod
    def _single_track_as_list(cls, value: Any) -> Any:
        # A history of exactly one track is returned as an object, not a list.
        if isinstance(value, dict):
            return [value]
        return value


class RecentTracksResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    recenttracks: _RecentTracksNode

    def tracks(self) -> list[RecentTrack]:
        return [payload.to_track() for payload in self.recenttracks.track]


__all__ = [
    "LastfmTrackPayload",
    "PLACEHOLDER_IMAGE_URL",
    "RecentTrack",
    "RecentTracksResponse",
]
