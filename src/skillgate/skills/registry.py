from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class SkillName(str, Enum):
    SUMMARIZE = "summarize"
    EXPLAIN = "explain"
    ACTION_ITEMS = "action_items"
    TRANSLATE = "translate"
    RAG_LITE = "rag_lite"
    VOICE_REPLY = "voice_reply"


class ResultKind(str, Enum):
    BULLETS = "bullets"
    EXPLANATION = "explanation"
    TASKS = "tasks"
    TRANSLATION = "translation"
    ANSWER = "answer"
    SPEECH_TEXT = "speech_text"


@dataclass(frozen=True)
class SkillSpec:
    name: SkillName
    title: str
    kind: ResultKind
    system: str
    max_tokens: int


DEFAULT_SKILLS: tuple[SkillSpec, ...] = (
    SkillSpec(
        name=SkillName.SUMMARIZE,
        title="Summarize",
        kind=ResultKind.BULLETS,
        system="You are a precise summarizer. Output 5 crisp bullets only.",
        max_tokens=300,
    ),
    SkillSpec(
        name=SkillName.EXPLAIN,
        title="Explain Simply",
        kind=ResultKind.EXPLANATION,
        system="Explain simply for a smart 12-year-old. Use short sentences.",
        max_tokens=400,
    ),
    SkillSpec(
        name=SkillName.ACTION_ITEMS,
        title="Action Items",
        kind=ResultKind.TASKS,
        system="Extract ordered, actionable tasks. Start each with a verb. Include owners if present.",
        max_tokens=320,
    ),
    SkillSpec(
        name=SkillName.TRANSLATE,
        title="Translate",
        kind=ResultKind.TRANSLATION,
        # {lang} is filled from extras.to at dispatch time.
        system="Translate into {lang}. Keep meaning; no extra commentary.",
        max_tokens=512,
    ),
    SkillSpec(
        name=SkillName.RAG_LITE,
        title="Smart Search (Lite)",
        kind=ResultKind.ANSWER,
        system="Answer concisely. If unsure, say what info is needed.",
        max_tokens=512,
    ),
    SkillSpec(
        name=SkillName.VOICE_REPLY,
        title="Voice Reply",
        kind=ResultKind.SPEECH_TEXT,
        system="Compose a short spoken-style answer (2-4 sentences).",
        max_tokens=180,
    ),
)


@dataclass
class SkillRegistry:
    _skills: dict[SkillName, SkillSpec] = field(default_factory=dict)

    def register(self, spec: SkillSpec) -> None:
        self._skills[spec.name] = spec

    def get(self, key: str) -> SkillSpec:
        """Raises KeyError for names outside the enum or not registered."""
        try:
            name = SkillName(key)
        except ValueError as e:
            raise KeyError(key) from e
        return self._skills[name]

    def list_skills(self) -> list[dict[str, str]]:
        return [{"key": spec.name.value, "title": spec.title} for spec in self._skills.values()]


def build_skill_registry(specs: tuple[SkillSpec, ...] = DEFAULT_SKILLS) -> SkillRegistry:
    registry = SkillRegistry()
    for spec in specs:
        registry.register(spec)
    return registry
