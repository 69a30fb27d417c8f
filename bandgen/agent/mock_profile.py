"""Mock band profile for development and testing."""

from bandgen.models.band_profile import (
    AlbumConcept,
    BandProfile,
    FormationStory,
    TrackPlan,
    VisualIdentity,
    VocalStyle,
)


def get_mock_band_profile() -> BandProfile:
    """Return a complete profile without calling the language model."""
    return BandProfile(
        band_name="The Midnight Echoes",
        primary_genre="Alternative Rock",
        influences=["Radiohead", "Arctic Monkeys", "The Strokes"],
        core_sound=(
            "Atmospheric alternative rock with driving guitars and introspective "
            "lyrics. Blends vintage and modern production."
        ),
        vocal_style=VocalStyle(
            type="Male lead vocals",
            description="Emotive, ranging from whispers to powerful belts",
        ),
        origin="Manchester, UK",
        formation_year=2019,
        backstory=(
            "Four friends who met at university, bonding over late-night jam "
            "sessions and a shared love of 90s alternative music."
        ),
        visual_identity=VisualIdentity(
            colors="Deep blues and purples with neon accents",
            aesthetic="Urban nighttime, moody and atmospheric",
            logo="Stylized moon with sound waves",
            style="Modern minimalist with vintage touches",
        ),
        lyrical_themes=["Urban isolation", "Late-night reflections", "Modern relationships"],
        album_concept=AlbumConcept(
            title="Neon Dreams",
            description="A journey through city nights and the emotions they evoke",
            themes=["Night life", "Connection", "Solitude"],
            narrative="From dusk to dawn in a sleepless city",
        ),
        track_listing=[
            TrackPlan(
                title="City Lights",
                theme="Opening anthem",
                description="Energetic opener about the allure of the city at night",
            ),
            TrackPlan(
                title="3AM Thoughts",
                theme="Introspection",
                description="Moody reflection on sleepless nights and racing thoughts",
            ),
            TrackPlan(
                title="Neon Hearts",
                theme="Love song",
                description="Romance found in unexpected places under neon signs",
            ),
        ],
        ai_description=(
            "Atmospheric alternative rock with driving guitars, emotive male vocals and "
            "introspective lyrics about city nights, isolation and connection, blending "
            "vintage warmth and modern polish."
        ),
        production_style="Layered guitars, analog synths and roomy live drums",
        formation_story=FormationStory(
            how_met="University music society",
            early_days="Playing small pubs around Manchester",
            breakthrough="A viral late-night session video",
        ),
        band_ai_instructions=(
            "Write in an introspective, urban voice. Favor night imagery, neon and "
            "streetlight metaphors, and emotionally honest first-person narration."
        ),
        album_ai_instructions=(
            "Every track belongs to one sleepless night in the city, moving from "
            "restless energy at dusk to quiet acceptance at dawn."
        ),
    )
