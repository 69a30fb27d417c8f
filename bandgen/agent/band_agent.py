"""Language-model backed generation of band profiles and lyrics.

The model is asked for JSON; replies are stripped of Markdown code fences,
parsed, and validated into pydantic models. Anything that does not parse
or validate raises MalformedResponse, which the stage executor records as
a stage failure.
"""

from __future__ import annotations

import json
import logging
import re

from pydantic import ValidationError

from bandgen.agent.prompts import LYRICS_SYSTEM_PROMPT, PROFILE_SYSTEM_PROMPT
from bandgen.errors import MalformedResponse
from bandgen.models.band_profile import BandProfile, LyricsResult, VisualPrompts
from bandgen.models.records import Song, truncate
from bandgen.services.llm_client import LanguageModelClient

log = logging.getLogger(__name__)

MAX_USER_PROMPT_CHARS = 2000
MAX_LYRICS_PROMPT_CHARS = 4000
AI_DESCRIPTION_MIN = 180
AI_DESCRIPTION_MAX = 200
DEFAULT_STYLE_PROMPT = "alternative rock, dynamic, energetic"

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?|```")


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def parse_json_response(text: str) -> dict:
    """Extract a JSON object from a model reply.

    Tries the fence-stripped text first, then the outermost ``{...}`` span.
    """
    cleaned = strip_code_fences(text or "")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        json_start = cleaned.find("{")
        json_end = cleaned.rfind("}") + 1
        if json_start < 0 or json_end <= json_start:
            raise MalformedResponse("No JSON found in model response")
        try:
            data = json.loads(cleaned[json_start:json_end])
        except json.JSONDecodeError as e:
            raise MalformedResponse(f"Model response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedResponse(f"Expected a JSON object, got {type(data).__name__}")
    return data


def normalize_ai_description(profile: BandProfile) -> str:
    """Keep the model's description if it is 180-200 chars, otherwise rebuild it."""
    desc = profile.ai_description.strip()
    if AI_DESCRIPTION_MIN <= len(desc) <= AI_DESCRIPTION_MAX:
        return desc

    base = f"{profile.primary_genre} band with {profile.vocal_style.type}. {profile.core_sound}".strip()
    if len(base) > AI_DESCRIPTION_MAX:
        return truncate(base, AI_DESCRIPTION_MAX)
    if len(base) < AI_DESCRIPTION_MIN:
        base = f"{base} Creating authentic music with passion and energy."
    return truncate(base, AI_DESCRIPTION_MAX)


def build_visual_prompts(profile: BandProfile) -> VisualPrompts:
    vi = profile.visual_identity
    album = profile.album_concept
    return VisualPrompts(
        logo=(
            f'Band logo for "{profile.band_name}": {vi.logo}. Style: {vi.aesthetic}. '
            f"Colors: {vi.colors}. Clean, iconic, suitable for merchandise."
        ),
        album_cover=(
            f'Album cover for "{album.title}" by {profile.band_name}: {album.description}. '
            f"Visual style: {vi.aesthetic}. {profile.primary_genre} aesthetic."
        ),
        band_photo=(
            f"Professional band photo of {profile.band_name}: {profile.backstory}. "
            f"{vi.style} aesthetic. {profile.vocal_style.description}."
        ),
    )


def build_style_prompt(song: Song, profile: BandProfile | None, limit: int = 1000) -> str:
    """Style/genre prompt for audio generation, capped at ``limit`` characters."""
    parts: list[str] = []
    if profile:
        parts.append(profile.primary_genre.lower())
        if profile.vocal_style.type:
            parts.append(profile.vocal_style.type.lower())
        if profile.core_sound:
            parts.append(profile.core_sound)
    description = song.song_description or song.description
    if description:
        parts.append(description)
    if song.artist_description:
        parts.append(song.artist_description)

    prompt = ", ".join(p.strip() for p in parts if p and p.strip())
    return truncate(prompt or DEFAULT_STYLE_PROMPT, limit)


def build_lyrics_prompts(song: Song, profile: BandProfile | None) -> tuple[str, str]:
    """System and user prompts for one song's lyrics."""
    album_line = ""
    band_instructions = ""
    if profile:
        album_line = (
            f'- Album: "{profile.album_concept.title}" - {profile.album_concept.description}\n'
        )
        if profile.band_ai_instructions:
            band_instructions = f"\nBand instructions: {profile.band_ai_instructions}"
    system = LYRICS_SYSTEM_PROMPT.format(
        genre=profile.primary_genre if profile else "Alternative",
        vocal_style=profile.vocal_style.type if profile else "Dynamic vocals",
        core_sound=(profile.core_sound if profile else "") or "Alternative sound",
        influences=", ".join(profile.influences) if profile and profile.influences else "Various influences",
        themes=", ".join(profile.lyrical_themes) if profile and profile.lyrical_themes else "Various themes",
        album_line=album_line,
        band_instructions=band_instructions,
    )

    lines = [
        f'Create lyrics for Track {song.track_number}: "{song.title}"',
        "",
        "Song context:",
        f"- Title: {song.title}",
        f"- Track number: {song.track_number}",
    ]
    if song.description:
        lines.append(f"- Description: {song.description}")
    if song.ai_instructions:
        lines.append(f"- Instructions: {song.ai_instructions}")
    if song.artist_description:
        lines.append(f"- Artist style: {song.artist_description}")
    lines.append("")
    lines.append("Generate complete, professional lyrics that tell a compelling story.")
    user = truncate("\n".join(lines), MAX_LYRICS_PROMPT_CHARS)
    return system, user


async def generate_band_profile(
    llm: LanguageModelClient,
    prompt: str,
    max_tokens: int | None = None,
    temperature: float = 0.7,
) -> BandProfile:
    """Ask the model for a band profile and validate it."""
    raw = await llm.complete(
        PROFILE_SYSTEM_PROMPT,
        truncate(prompt.strip(), MAX_USER_PROMPT_CHARS),
        max_tokens=max_tokens,
        temperature=temperature,
    )
    data = parse_json_response(raw)
    try:
        profile = BandProfile.model_validate(data)
    except ValidationError as e:
        log.error("Band profile failed validation: %s", e)
        raise MalformedResponse(f"Model response is not a valid band profile: {e}") from e

    profile.ai_description = normalize_ai_description(profile)
    log.info(
        "Generated band profile '%s' (%s, %d tracks)",
        profile.band_name,
        profile.primary_genre,
        len(profile.track_listing),
    )
    return profile


async def generate_lyrics(
    llm: LanguageModelClient,
    song: Song,
    profile: BandProfile | None,
    max_tokens: int | None = None,
    temperature: float = 0.8,
) -> LyricsResult:
    system, user = build_lyrics_prompts(song, profile)
    raw = await llm.complete(system, user, max_tokens=max_tokens, temperature=temperature)
    data = parse_json_response(raw)
    try:
        result = LyricsResult.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(f"Model response is not valid lyrics: {e}") from e
    log.info("Generated lyrics for '%s' (%d lines)", song.title, len(result.lyrics.splitlines()))
    return result
