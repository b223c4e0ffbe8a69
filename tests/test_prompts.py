"""Prompt composition and caption templates."""
import pytest

from videofactory.prompts import (
    HASHTAGS,
    TEMPLATES,
    build_captions,
    compose,
    narration_script,
    resolve_style,
)


def test_compose_is_deterministic(cfg):
    a = compose("Llave perdida", "Cliente en Doral sin llaves", "cinematic", cfg=cfg)
    b = compose("Llave perdida", "Cliente en Doral sin llaves", "cinematic", cfg=cfg)
    assert a == b


def test_compose_includes_inputs_and_brand(cfg):
    prompt = compose("Llave perdida", "Cliente en Doral", "tech", cfg=cfg)
    assert "Llave perdida" in prompt
    assert "Cliente en Doral" in prompt
    assert cfg.BRAND_NAME in prompt
    assert cfg.BRAND_PHONE in prompt
    assert TEMPLATES["tech"].direction in prompt


def test_unknown_style_falls_back_to_cinematic(cfg):
    assert resolve_style("does-not-exist").name == "cinematic"
    assert resolve_style(None).name == "cinematic"
    assert compose("t", "i", "does-not-exist", cfg=cfg) == compose("t", "i", "cinematic", cfg=cfg)


@pytest.mark.parametrize("alias, name", [("product", "cinematic"), ("selfie", "ugc"), ("  UGC ", "ugc")])
def test_aliases(alias, name):
    assert resolve_style(alias).name == name


def test_reference_adds_fidelity_line(cfg):
    without = compose("t", "i", "luxury", has_reference=False, cfg=cfg)
    with_ref = compose("t", "i", "luxury", has_reference=True, cfg=cfg)
    assert "reference image" not in without
    assert "Match lighting, colors and product appearance to the reference image." in with_ref


def test_ugc_reference_requires_exact_product(cfg):
    prompt = compose("t", "i", "ugc", has_reference=True, cfg=cfg)
    assert "exact product shown in the reference image" in prompt
    assert f'"{cfg.BRAND_NAME}"' in prompt


def test_satisfying_is_hands_only(cfg):
    assert "no faces" in compose("t", "i", "satisfying", cfg=cfg)


def test_captions_cover_every_platform(cfg):
    captions = build_captions("Llave perdida", "Cliente sin llaves", cfg)
    assert set(captions) == {"tiktok", "instagram", "facebook", "youtube", "twitter"}
    for platform, text in captions.items():
        assert f"Escríbele a Alex: {cfg.BRAND_WHATSAPP}" in text, platform
        assert sum(1 for tag in HASHTAGS if tag in text) == 5, platform


def test_twitter_caption_fits_limit(cfg):
    captions = build_captions("x" * 500, "idea", cfg)
    assert len(captions["twitter"]) <= 280
    assert captions["twitter"].endswith(" ".join(HASHTAGS))


def test_narration_script_mentions_brand(cfg):
    script = narration_script("Llave perdida", "Cliente sin llaves", cfg)
    assert cfg.BRAND_NAME in script
    assert "Llave perdida" in script
