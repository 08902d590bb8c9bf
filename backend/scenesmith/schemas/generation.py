from __future__ import annotations
"""Request/response schemas for the generation endpoints."""

from pydantic import Field

from scenesmith.schemas.common import CamelModel


class StyleFields(CamelModel):
    aspect_ratio: str | None = None
    style: str | None = None
    mood: str | None = None
    color_palette: str | None = None
    pacing: str | None = None


class PlannedSceneRead(CamelModel):
    scene_number: int
    prompt: str
    duration: float
    start_time: float
    end_time: float


class GenerateScriptResponse(CamelModel):
    script: str
    scenes: list[PlannedSceneRead]


class SceneGenerateRequest(StyleFields):
    """Generate (or regenerate) one scene; sceneIndex is 0-based."""

    scene_index: int = Field(..., ge=0)
    prompt: str = Field(..., min_length=1)
    reference_images: list[str] = Field(default_factory=list)
    previous_scene_video_url: str | None = None
    previous_scene_last_frame: str | None = None
    use_reference_frame: bool = False
    continuous: bool = False
    video_model_id: str | None = None
    duration: float | None = Field(None, gt=0)


class SceneGenerateResponse(CamelModel):
    video_url: str
    first_frame_url: str
    last_frame_url: str


class SceneInput(CamelModel):
    scene_index: int = Field(..., ge=0)
    prompt: str = Field(..., min_length=1)
    selected_asset_ids: list[str] = Field(default_factory=list)
    extend_previous: bool = False
    duration: float | None = Field(None, gt=0)


class GenerateAllRequest(StyleFields):
    scenes: list[SceneInput] = Field(..., min_length=1)
    parallel: bool = False
    continuous: bool = False
    use_reference_frame: bool = False
    asset_id_to_url_map: dict[str, str] = Field(default_factory=dict)
    video_model_id: str | None = None
    music_url: str | None = None


class FrameUrls(CamelModel):
    first: str | None = None
    last: str | None = None


class GenerateAllResponse(CamelModel):
    final_video_url: str
    scene_urls: list[str]
    frame_urls: list[FrameUrls]


class StitchRequest(CamelModel):
    music_url: str | None = None
    music_volume: float | None = Field(None, ge=0, le=2)


class StitchResponse(CamelModel):
    success: bool
    video_url: str
    scene_count: int
    has_music: bool


class GenerateImageRequest(CamelModel):
    prompt: str = Field(..., min_length=1)
    image_model_id: str | None = None
    aspect_ratio: str = "16:9"
    project_id: str | None = None


class GenerateImageResponse(CamelModel):
    image_url: str
    asset_id: str | None = None
    asset_number: int | None = None


class GenerateMusicRequest(CamelModel):
    lyrics: str = ""
    prompt: str = ""
    bitrate: int = Field(256000, gt=0)
    sample_rate: int = Field(44100, gt=0)
    audio_format: str = "mp3"


class GenerateMusicResponse(CamelModel):
    music_url: str


class GenerationQueued(CamelModel):
    project_id: str
    task_id: str | None = None
    status: str
