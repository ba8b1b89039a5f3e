from outline_prompts import (
    COMPACT_INSTRUCTIONS,
    SCHEMA_TEMPLATE,
    FounderInput,
    build_system_prompt,
    build_user_prompt,
    normalize_tone,
)

from conftest import FOUNDER


def test_missing_fields_lists_every_blank_required_field():
    data = dict(FOUNDER, startup="   ", problem="", solution=None)
    del data["industry"]

    assert set(FounderInput.missing_fields(data)) == {"startup", "industry", "problem", "solution"}


def test_missing_fields_accepts_non_string_values():
    data = dict(FOUNDER, one_liner=42, solution=0)

    assert FounderInput.missing_fields(data) == []


def test_from_dict_defaults_optional_fields():
    founder = FounderInput.from_dict(dict(FOUNDER, unknown="ignored"))

    assert founder.startup == "Foo"
    assert founder.gtm == ""
    assert founder.moat == ""
    assert founder.tone == "crisp"


def test_normalize_tone():
    assert normalize_tone(None) == "crisp"
    assert normalize_tone(" Narrative ") == "narrative"
    assert normalize_tone("technical") == "technical"
    assert normalize_tone("sarcastic") == "crisp"


def test_system_prompt_encodes_output_contract():
    founder = FounderInput.from_dict(dict(FOUNDER, tone="technical"))
    system = build_system_prompt(founder)

    assert "10-12 slides" in system
    assert "3-5 bullets/slide (12-20 words each)" in system
    assert "Do NOT invent numbers or names" in system
    assert "proof_needed" in system and "proof_todos" in system
    assert "Keep tone technical" in system
    assert COMPACT_INSTRUCTIONS not in system


def test_compact_system_prompt_appends_compact_mode():
    founder = FounderInput.from_dict(FOUNDER)
    system = build_system_prompt(founder, compact=True)

    assert system.startswith(build_system_prompt(founder))
    assert system.endswith(COMPACT_INSTRUCTIONS)
    assert "Exactly 10 slides" in system


def test_user_prompt_embeds_schema_and_every_field():
    founder = FounderInput.from_dict(dict(FOUNDER, traction="200 waitlist signups"))
    user = build_user_prompt(founder)

    assert SCHEMA_TEMPLATE in user
    assert "startup: Foo\n" in user
    assert "traction: 200 waitlist signups\n" in user
    assert "gtm: \n" in user
    assert "tone: crisp\n" in user
    assert user.rstrip().endswith("Return ONLY valid JSON.")


def test_prompts_are_deterministic():
    first = FounderInput.from_dict(FOUNDER)
    second = FounderInput.from_dict(dict(FOUNDER))

    assert build_system_prompt(first) == build_system_prompt(second)
    assert build_user_prompt(first) == build_user_prompt(second)
