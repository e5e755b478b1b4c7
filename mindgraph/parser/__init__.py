from .intents import (
    Intent,
    IntentPayload,
    MindMap,
    QuestionAnswer,
    StoreMemory,
    decode_intent,
    strip_fences,
)
from .parser import FragmentGenerator, IntentRouter, build_instruction, build_turn_context

__all__ = [
    "FragmentGenerator",
    "Intent",
    "IntentPayload",
    "IntentRouter",
    "MindMap",
    "QuestionAnswer",
    "StoreMemory",
    "build_instruction",
    "build_turn_context",
    "decode_intent",
    "strip_fences",
]
