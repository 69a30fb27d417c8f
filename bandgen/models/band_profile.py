from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    """Accepts the camelCase keys the language model emits as well as snake_case."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VocalStyle(_CamelModel):
    """Lead vocal character."""
    type: str = Field(default="mixed vocals", description="e.g. 'powerful female lead'")
    description: str = Field(default="", description="How the vocals sound")


class VisualIdentity(_CamelModel):
    """Look and feel used to derive image prompts."""
    colors: str = ""
    aesthetic: str = ""
    logo: str = Field(default="", description="Logo concept description")
    style: str = Field(default="", description="Overall visual style")


class AlbumConcept(_CamelModel):
    """The debut album the band ships with."""
    title: str = Field(min_length=1, description="Album title")
    description: str = Field(default="", description="2-3 sentence summary")
    themes: list[str] = Field(default_factory=list)
    narrative: str = Field(default="", description="Album narrative arc")


class TrackPlan(_CamelModel):
    """One planned track on the album."""
    title: str = Field(min_length=1)
    theme: str = ""
    description: str = Field(default="", description="50-100 character summary")


class FormationStory(_CamelModel):
    how_met: str = ""
    early_days: str = ""
    breakthrough: str = ""


class BandProfile(_CamelModel):
    """Complete band profile returned by the profile stage.

    Only the name, genre, album concept and a non-empty track listing are
    required; everything else is filled with defaults when the model omits it.
    """
    band_name: str = Field(min_length=1)
    primary_genre: str = Field(min_length=1)
    influences: list[str] = Field(default_factory=list)
    core_sound: str = ""
    vocal_style: VocalStyle = Field(default_factory=VocalStyle)
    origin: str = ""
    formation_year: int | None = None
    backstory: str = ""
    visual_identity: VisualIdentity = Field(default_factory=VisualIdentity)
    lyrical_themes: list[str] = Field(default_factory=list)
    album_concept: AlbumConcept
    track_listing: list[TrackPlan] = Field(min_length=1)
    ai_description: str = Field(
        default="",
        description="180-200 characters describing the band's style for music generation",
    )
    production_style: str = ""
    formation_story: FormationStory = Field(default_factory=FormationStory)
    band_ai_instructions: str = ""
    album_ai_instructions: str = ""


class LyricsResult(_CamelModel):
    """Output of the lyrics stage."""
    song_description: str = Field(default="", description="Under 100 characters")
    lyrics: str = Field(min_length=1)


class VisualPrompts(BaseModel):
    """Free-text prompts for the three band images."""
    logo: str
    album_cover: str
    band_photo: str
