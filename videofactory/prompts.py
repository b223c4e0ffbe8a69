"""
Prompt and caption templates.

Everything here is a pure function of its inputs and the brand settings:
the same (title, idea, style) always produces the same prompt, so the
composed instruction stored on a job can be reproduced exactly.

Styles select a structural template. Unknown styles fall back to
``cinematic``; ``product`` and ``selfie`` are legacy aliases.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .config import Settings, settings as default_settings


@dataclass(frozen=True)
class StyleTemplate:
    name: str
    direction: str
    beats: Tuple[str, ...]
    # speaking subject on camera holding the exact product from the reference
    speaking_subject: bool = False
    hands_only: bool = False


TEMPLATES: Dict[str, StyleTemplate] = {
    "cinematic": StyleTemplate(
        name="cinematic",
        direction="Netflix-opening cinematic commercial, anamorphic lenses, shallow depth of field, moody practical lighting.",
        beats=(
            "0-2s cold open: macro shot inside the mechanism, metallic textures catching light.",
            "2-8s reveal: slow dolly around the technician at work, sparks of screen glow.",
            "8-13s payoff: the vehicle unlocks, lights flash, the product in sharp focus.",
            "13-15s close: brand name and phone number on a clean end frame.",
        ),
    ),
    "viral": StyleTemplate(
        name="viral",
        direction="Scroll-stopping social video with a hook in the first second and fast, punchy pacing.",
        beats=(
            "0-1s hook: an unexpected close-up that makes the viewer stop scrolling.",
            "1-10s problem to solution in three quick cuts.",
            "10-15s reaction shot and call to action.",
        ),
    ),
    "luxury": StyleTemplate(
        name="luxury",
        direction="Premium automotive advertising, polished surfaces, slow motion, gold-hour light.",
        beats=(
            "0-5s slow glide over the car body and the key resting on leather.",
            "5-12s precise, elegant handling of the product.",
            "12-15s logo moment with restrained typography.",
        ),
    ),
    "story": StyleTemplate(
        name="story",
        direction="Mini narrative with a relatable customer in trouble and a hero technician arriving.",
        beats=(
            "0-4s the setup: a stranded driver, frustration, night street.",
            "4-11s the rescue: the technician works calmly and fast.",
            "11-15s the relief: the car starts, a smile, the brand.",
        ),
    ),
    "hypebeast": StyleTemplate(
        name="hypebeast",
        direction="Streetwear-drop energy, bold colors, whip pans, flash photography look.",
        beats=(
            "0-3s product drop shot with strobe flashes.",
            "3-12s rhythmic cuts synced to an implied beat.",
            "12-15s hero freeze frame.",
        ),
    ),
    "pov": StyleTemplate(
        name="pov",
        direction="First-person point of view from the technician's eyes, head-mounted camera feel.",
        beats=(
            "0-5s walking up to the vehicle, tools in hand.",
            "5-12s hands working on the key and the diagnostic tablet.",
            "12-15s the door opens in front of the camera.",
        ),
    ),
    "tech": StyleTemplate(
        name="tech",
        direction="High-tech diagnostic aesthetic, screen glow in the dark, LED accents, HUD-style overlays.",
        beats=(
            "0-4s tablet boots up, code scrolling.",
            "4-12s programming progress with overlay text 'ACCESS GRANTED'.",
            "12-15s the new key lights up.",
        ),
    ),
    "emergency": StyleTemplate(
        name="emergency",
        direction="Urgent 3AM lockout rescue, rain on pavement, reflections everywhere, handheld tension.",
        beats=(
            "0-3s locked out, keys visible inside the car.",
            "3-12s the service van arrives, fast professional work.",
            "12-15s door open, relief, 24/7 availability message.",
        ),
    ),
    "satisfying": StyleTemplate(
        name="satisfying",
        direction="Oddly satisfying close-ups, hands-only product shots, no faces, crisp foley sounds.",
        beats=(
            "0-5s hands place the key blank into the cutter.",
            "5-12s perfect cut, smooth motion, shavings falling.",
            "12-15s the finished key clicks into the fob.",
        ),
        hands_only=True,
    ),
    "ugc": StyleTemplate(
        name="ugc",
        direction="Authentic handheld selfie-style UGC video filmed by the creator on a smartphone at arm's length, vertical 9:16.",
        beats=(
            "The creator is centered in frame, looking at the camera, holding the product in the free hand.",
            "One continuous shot, slight natural camera shake, no cuts.",
            "The creator says one or two casual sentences in Latin American Spanish.",
        ),
        speaking_subject=True,
    ),
}

ALIASES = {
    "product": "cinematic",
    "selfie": "ugc",
}

DEFAULT_STYLE = "cinematic"


def resolve_style(style: Optional[str]) -> StyleTemplate:
    key = (style or "").strip().lower()
    key = ALIASES.get(key, key)
    return TEMPLATES.get(key, TEMPLATES[DEFAULT_STYLE])


def compose(
    title: str,
    idea: str,
    style: Optional[str],
    has_reference: bool = False,
    cfg: Settings = default_settings,
) -> str:
    """Build the generation instruction for one job."""
    template = resolve_style(style)
    lines = [
        f"Style: {template.name}. {template.direction}",
        "",
        f"Brand: {cfg.BRAND_NAME}, {cfg.BRAND_LOCATION}. Phone: {cfg.BRAND_PHONE}.",
        f"Title: {title.strip()}",
        f"Concept: {idea.strip()}",
        "",
        "Shot plan:",
    ]
    lines += [f"- {beat}" for beat in template.beats]

    if template.speaking_subject:
        lines += [
            "",
            f'The creator clearly says "{cfg.BRAND_NAME}" and "{cfg.BRAND_PHONE}" on camera.',
            "The phone used to record is never visible.",
        ]
    if template.hands_only:
        lines += ["", "Only hands and the product are in frame; no faces."]

    if has_reference:
        lines.append("")
        if template.speaking_subject:
            lines.append(
                "The creator must hold the exact product shown in the reference image. "
                "Do not substitute a different product."
            )
        else:
            lines.append("Match lighting, colors and product appearance to the reference image.")

    lines += ["", "Duration 15 seconds, vertical 9:16, photorealistic."]
    return "\n".join(lines)


# ── Captions ─────────────────────────────────────────────────────────

HASHTAGS = ("#ProgrammingCar", "#MiamiLocksmith", "#CarKeys", "#AllKeysLost", "#AutoKeys")


def build_captions(title: str, idea: str, cfg: Settings = default_settings) -> Dict[str, str]:
    """One caption per platform: text, call to action, then exactly five hashtags."""
    cta = f"Escríbele a Alex: {cfg.BRAND_WHATSAPP}"
    tags = " ".join(HASHTAGS)
    title = title.strip()
    idea = idea.strip()

    captions = {
        "tiktok": f"{title}\n\n{cta}\n\n{tags}",
        "instagram": f"{title} | {idea}\n\n{cta}\n\n{tags}",
        "facebook": f"{idea}\n\n{cfg.BRAND_NAME} - {cfg.BRAND_LOCATION} 24/7.\n{cta}\n\n{tags}",
        "youtube": f"{title}\n\n{idea}\n\n{cfg.BRAND_NAME} {cfg.BRAND_PHONE}\n{cta}\n\n{tags}",
    }
    tail = f"\n\n{cta}\n\n{tags}"
    head = title[: max(0, 280 - len(tail))]
    captions["twitter"] = f"{head}{tail}"[:280]
    return captions


def narration_script(title: str, idea: str, cfg: Settings = default_settings) -> str:
    """Short voice-over read by the narrated styles, about fifteen seconds spoken."""
    return (
        f"¡Hola Miami! Aquí {cfg.BRAND_NAME}. {title.strip()}. {idea.strip()}. "
        f"Escríbenos por WhatsApp y te atendemos al momento."
    )
