"""
Deck Outline Prompts
Founder input model and the prompt blocks sent to the generation service
"""

import logging
from dataclasses import dataclass, fields
from typing import Dict, List, Any

logger = logging.getLogger(__name__)

PROMPT_VERSION = "v1"

REQUIRED_FIELDS = ["startup", "one_liner", "industry", "target_user", "problem", "solution"]
OPTIONAL_FIELDS = ["gtm", "business_model", "traction", "competition", "moat", "ask_use", "tone"]

TONES = ("crisp", "narrative", "technical")
DEFAULT_TONE = "crisp"

TONE_STYLES = {
    "crisp": "crisp (McKinsey/Goldman)",
    "narrative": "narrative (story-led, still evidence-first)",
    "technical": "technical (precise, architecture and metrics forward)",
}

SCHEMA_TEMPLATE = """{
  "meta": {
    "startup": "<string>",
    "industry": "<string>",
    "stage": "seed",
    "tone": "<crisp|narrative|technical>",
    "prompt_version": "%s",
    "created_at": "<ISO8601>"
  },
  "slides": [{
    "id": 1,
    "title": "<Title Case>",
    "purpose": "<investor question this slide answers>",
    "bullets": ["<12-20 words>", "<3-5 bullets total>"],
    "visual": "<suggested chart/mock/layout>",
    "proof_needed": ["<evidence item 1>", "<2-4 items>"]
  }],
  "proof_todos": ["<global TODOs founders must supply, max 8>"],
  "warnings": ["<any caveats or missing info>"]
}""" % PROMPT_VERSION

COMPACT_INSTRUCTIONS = """
COMPACT MODE (the previous attempt ran out of output budget):
- Exactly 10 slides.
- 3 bullets per slide, 12-16 words each. Tighter phrasing, no repetition.
- 2 proof_needed items per slide.
- Move missing detail into warnings and proof_todos instead of slide text.
- The JSON must be complete and closed. Return ONLY valid JSON.
"""


def _as_text(value: Any) -> str:
    if value is None or value is False:
        return ""
    return str(value)


@dataclass
class FounderInput:
    """Founder-supplied startup facts"""
    startup: str
    one_liner: str
    industry: str
    target_user: str
    problem: str
    solution: str
    gtm: str = ""
    business_model: str = ""
    traction: str = ""
    competition: str = ""
    moat: str = ""
    ask_use: str = ""
    tone: str = DEFAULT_TONE

    @staticmethod
    def missing_fields(data: Dict[str, Any]) -> List[str]:
        """Required fields that are absent or blank after trimming"""
        return [name for name in REQUIRED_FIELDS if not _as_text(data.get(name)).strip()]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FounderInput":
        """Build from a request body; callers check missing_fields first"""
        known = {f.name for f in fields(cls)}
        values = {name: _as_text(data.get(name)) for name in known}
        values["tone"] = normalize_tone(data.get("tone"))
        return cls(**values)


def normalize_tone(value: Any) -> str:
    """Map a requested tone onto one of the supported tones"""
    tone = _as_text(value).strip().lower()
    if not tone:
        return DEFAULT_TONE
    if tone not in TONES:
        logger.warning(f"Unknown tone '{tone}', using '{DEFAULT_TONE}'")
        return DEFAULT_TONE
    return tone


def build_system_prompt(founder: FounderInput, compact: bool = False) -> str:
    """Instruction block encoding the output contract"""
    system = f"""
You are "Neovik Deck Co-Author": a seed-stage investor-grade deck outliner.
Return ONLY valid JSON per the schema. No prose, no markdown.
- 10-12 slides. Each slide answers a real investor question.
- 3-5 bullets/slide (12-20 words each). No fluff.
- Do NOT invent numbers or names. If missing, add precise proof_needed and global proof_todos.
- Seed bar: prove pull, wedge, path to revenue in 12-18 months.
- Titles in Title Case. Visuals are concrete (e.g., "cohort chart").
- Keep tone {TONE_STYLES[founder.tone]}. All schema fields must exist.
"""
    if compact:
        system += COMPACT_INSTRUCTIONS
    return system


def build_user_prompt(founder: FounderInput) -> str:
    """User block: schema template, every founder field and the task"""
    return f"""
SCHEMA:
{SCHEMA_TEMPLATE}

FOUNDER_INPUT:
startup: {founder.startup}
one_liner: {founder.one_liner}
industry: {founder.industry}
stage: seed
target_user: {founder.target_user}
problem: {founder.problem}
solution: {founder.solution}
gtm: {founder.gtm}
business_model: {founder.business_model}
traction: {founder.traction}
competition: {founder.competition}
moat: {founder.moat}
ask_use: {founder.ask_use}
tone: {founder.tone}

TASK:
Produce a 10-12 slide outline for seed investors.
Each slide: title, purpose, 3-5 bullets, visual, and 2-4 proof_needed.
Aggregate the most critical missing evidence into proof_todos (max 8).
Return ONLY valid JSON.
"""
