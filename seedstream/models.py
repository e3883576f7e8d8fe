"""
Pydantic models for the SeedStream API and job results
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobState(str, Enum):
    SUBMITTED = "submitted"
    INGESTING = "ingesting"
    PROCESSING_FILES = "processing_files"
    COMPLETED = "completed"
    FAILED = "failed"


class PlaylistResult(BaseModel):
    """One published playlist. Immutable once recorded."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    playlist_url: str = Field(alias="playlistUrl")
    file_name: str = Field(alias="fileName")


class StartStreamRequest(BaseModel):
    magnet: Optional[str] = None


class StartStreamResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    unique_id: str = Field(alias="uniqueId")


class StatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    unique_id: str = Field(alias="uniqueId")
    status: str
    state: str


class PlaylistResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    unique_id: str = Field(alias="uniqueId")
    playlist_urls: List[PlaylistResult] = Field(alias="playlistUrls")


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float
    active_jobs: int
