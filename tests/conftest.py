import asyncio
import json
from typing import Dict, List, Optional

import pytest

from quiz_generation.limiter import ConcurrencyLimiter, RetryPolicy
from quiz_generation.providers import ProviderAdapter, ProviderRegistry
from quiz_generation.schemas import EncodedImage


PAGE_TEXTS = [
    "Plants make their own food using sunlight, water and carbon dioxide in their leaves.",
    "Animals that eat only plants are called herbivores and usually have flat teeth.",
    "The water cycle moves water between the oceans, the air and the land every day.",
    "Magnets attract objects made of iron and nickel but not wood or plastic.",
    "The moon goes around the earth once every month and reflects light from the sun.",
    "Bones protect soft organs, and muscles pull on bones so that the body can move.",
    "Sound travels as vibrations through air, water and solids to reach our ears.",
]


# Prompt markers → capability, mirroring quiz_generation.prompts
_PROMPT_KINDS = [
    ("Analyse the images and write the lesson", "basic"),
    ("certified primary-school teacher", "generate"),
    ("Work out the correct answer", "answers"),
    ("quality reviewer for educational content", "grounding"),
    ("Rewrite these questions", "regenerate"),
    ("really appear in this image", "vision"),
]


def classify_prompt(prompt: str) -> str:
    for marker, kind in _PROMPT_KINDS:
        if marker in prompt:
            return kind
    return "unknown"


class ScriptedProvider(ProviderAdapter):
    """
    Provider whose transport replays scripted responses per capability.

    Each script entry is a string, an exception instance, or a list of those;
    list items are consumed in order and the last one repeats.
    """

    def __init__(self, name: str, limiter: Optional[ConcurrencyLimiter] = None, **script):
        super().__init__(name, limiter or ConcurrencyLimiter(5))
        self.script: Dict[str, list] = {
            kind: list(value) if isinstance(value, list) else [value]
            for kind, value in script.items()
        }
        self.calls: List[tuple] = []

    async def _complete(self, prompt, images=None, system=None, max_tokens=2048):
        kind = classify_prompt(prompt)
        self.calls.append((kind, prompt, images))
        await asyncio.sleep(0)
        queue = self.script.get(kind)
        if not queue:
            raise RuntimeError(f"{self.name}: no scripted response for {kind}")
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, BaseException):
            raise response
        return response

    def count(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)


# ─── Payload builders ─────────────────────────────────────────────────────────

def mcq(index: int, page: int = 0, correct: str = "A", evidence: bool = True) -> dict:
    question = {
        "type": "multiple_choice",
        "question": f"Question {index}: which statement matches the page?",
        "options": ["first", "second", "third", "fourth"],
        "correct": correct,
        "explanation": "It is stated on the page.",
    }
    if evidence:
        question["evidence"] = {
            "sourceText": PAGE_TEXTS[page % len(PAGE_TEXTS)][:45],
            "pageIndex": page,
            "confidence": 0.9,
        }
    return question


def true_false(index: int, page: int = 0, correct: bool = True) -> dict:
    return {
        "type": "true_false",
        "question": f"Statement {index} is true.",
        "correct": correct,
        "explanation": "See the page.",
        "evidence": {"sourceText": PAGE_TEXTS[page % len(PAGE_TEXTS)][:45], "pageIndex": page, "confidence": 0.85},
    }


def generation_payload(
    count: int = 20,
    pages: int = 3,
    extracted: Optional[List[str]] = None,
    questions: Optional[List[dict]] = None,
) -> dict:
    if questions is None:
        questions = [mcq(i, page=i % pages) for i in range(count - 2)]
        questions += [true_false(count - 2 + i, page=i % pages) for i in range(2)]
    return {
        "extractedText": extracted if extracted is not None else PAGE_TEXTS[:pages],
        "lesson": {
            "title": "Living things",
            "summary": "How plants and animals live.",
            "keyPoints": ["Plants make food", "Herbivores eat plants"],
            "targetAge": 9,
            "confidence": 0.9,
            "steps": [{"type": "explanation", "content": "Plants need light."}],
        },
        "questions": questions,
    }


def fenced(payload) -> str:
    return "Here is the quiz:\n```json\n" + json.dumps(payload, ensure_ascii=False) + "\n```"


def verdict_json(confidence=0.9, action="ACCEPT", weak=None, issues=None) -> str:
    return json.dumps({
        "overallConfidence": confidence,
        "weakQuestions": weak or [],
        "issues": issues or [],
        "recommendedAction": action,
    })


def answers_json(letters: List[str]) -> str:
    return json.dumps({"answers": letters})


def make_images(count: int) -> List[EncodedImage]:
    return [EncodedImage(data=f"page-{i}".encode(), mime_type="image/jpeg") for i in range(count)]


def make_registry(limiter: Optional[ConcurrencyLimiter] = None, **scripts) -> ProviderRegistry:
    limiter = limiter or ConcurrencyLimiter(5)
    providers = [
        ScriptedProvider(name, limiter, **scripts.get(name, {}))
        for name in ("gemini", "openai", "anthropic")
    ]
    return ProviderRegistry(providers)


def fast_policy(attempts: int) -> RetryPolicy:
    return RetryPolicy(attempts=attempts, base_delay=0.0, max_delay=0.0)


# ─── Fixtures ─────────────────────────────────────────────────────────────────

@pytest.fixture
def images():
    return make_images(3)


@pytest.fixture
def no_wait_retry():
    return fast_policy


@pytest.fixture(autouse=True)
def _reset_circuits():
    from quiz_generation.circuit_breaker import reset_all_circuits
    reset_all_circuits()
    yield
    reset_all_circuits()
