from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class ArtistSongsInput(BaseModel):
    artist_path: str = Field(min_length=1, max_length=500)


class ChordSheetInput(BaseModel):
    path: str = Field(min_length=1, max_length=1000)


class ArtistSearchInput(BaseModel):
    artist: str = Field(min_length=1, max_length=500)


class SearchInput(BaseModel):
    artist: str = Field(default="", max_length=500)
    song: str = Field(default="", max_length=500)

    @model_validator(mode="after")
    def _require_one_dimension(self) -> SearchInput:
        if not self.artist.strip() and not self.song.strip():
            raise ValueError("Provide at least one of 'artist' or 'song'")
        return self
