from skillgate.skills.engine import SkillEngine, SkillRequest, SkillResult, SkillRun, estimate_tokens, estimate_usage
from skillgate.skills.registry import ResultKind, SkillName, SkillRegistry, SkillSpec, build_skill_registry

__all__ = [
    "ResultKind",
    "SkillEngine",
    "SkillName",
    "SkillRegistry",
    "SkillRequest",
    "SkillResult",
    "SkillRun",
    "SkillSpec",
    "build_skill_registry",
    "estimate_tokens",
    "estimate_usage",
]
