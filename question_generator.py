"""LLM integration for quiz question generation.

One prompt and one parser are shared by every provider; providers only differ in
how they send the prompt and which SDK errors are worth retrying.
"""

import json
import logging
import random
import time
from typing import Dict, List, Optional, Sequence, Tuple, Type

import anthropic
import openai
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

import config
from errors import UpstreamGenerationError
from models import GenerationRequest, Question
from validation import _build_question, question_errors

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert quiz creator who generates engaging, accurate, and "
    "educational quiz questions. Always respond with valid JSON."
)

DIFFICULTY_GUIDE = {
    "beginner": "simple, straightforward questions suitable for newcomers to the topic",
    "intermediate": "moderately challenging questions requiring some knowledge",
    "expert": "complex, nuanced questions for those with deep expertise",
}

TYPE_INSTRUCTIONS = {
    "multiple": "Multiple choice with 4 options (A, B, C, D)",
    "truefalse": "True/False questions",
    "text": "Short answer questions (1-3 words expected)",
    "ranking": "Ranking/ordering questions with 3-5 items",
}

VARIETY_SEEDS = [
    "Use creative, original angles on the topic.",
    "Cover different aspects of the topic, not just the most famous facts.",
    "Mix well-known facts with surprising ones.",
    "Vary the wording and structure of each question.",
]


class _RetryableError(Exception):
    """Provider error that should be retried (rate limit, overload)."""


# ----------------------------------------------------------------------
# Providers
# ----------------------------------------------------------------------

class GenerationProvider:
    """Base strategy: rate limiting plus retries around ``_send``."""

    name = ""
    transient_errors: Tuple[Type[BaseException], ...] = (_RetryableError,)
    fatal_errors: Tuple[Type[BaseException], ...] = ()

    def __init__(self, api_key: str, model: str, timeout: float):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._last_request_time: float = 0

    def _rate_limit(self) -> None:
        elapsed = time.time() - self._last_request_time
        if elapsed < config.RATE_LIMIT_SECONDS:
            time.sleep(config.RATE_LIMIT_SECONDS - elapsed)
        self._last_request_time = time.time()

    def _send(self, system_prompt: str, user_prompt: str) -> str:
        raise NotImplementedError

    def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Send one prompt, retrying transient failures with exponential backoff."""
        last_error: Optional[BaseException] = None
        for attempt in range(config.MAX_RETRIES):
            self._rate_limit()
            try:
                text = self._send(system_prompt, user_prompt)
            except self.fatal_errors as e:
                raise UpstreamGenerationError(
                    f"{self.name} rejected the request: {e}", provider=self.name
                ) from e
            except self.transient_errors as e:
                last_error = e
                logger.warning(
                    "%s attempt %d/%d failed: %s", self.name, attempt + 1, config.MAX_RETRIES, e
                )
                if attempt < config.MAX_RETRIES - 1:
                    time.sleep(config.RETRY_BACKOFF_SECONDS * (2 ** attempt))
                continue

            if not text or not text.strip():
                raise UpstreamGenerationError(f"{self.name} returned an empty response", provider=self.name)
            return text

        raise UpstreamGenerationError(
            f"{self.name} failed after {config.MAX_RETRIES} retries: {last_error}",
            provider=self.name,
        )


class AnthropicProvider(GenerationProvider):
    name = "anthropic"
    transient_errors = (
        _RetryableError,
        anthropic.RateLimitError,
        anthropic.APIConnectionError,
        anthropic.InternalServerError,
    )
    fatal_errors = (anthropic.AuthenticationError, anthropic.BadRequestError)

    def __init__(self, api_key: str, model: str = "", timeout: float = 0):
        super().__init__(api_key, model or config.ANTHROPIC_MODEL,
                         timeout or config.GENERATION_TIMEOUT_SECONDS)
        self.client = anthropic.Anthropic(api_key=api_key, timeout=self.timeout)

    def _send(self, system_prompt: str, user_prompt: str) -> str:
        response = self.client.messages.create(
            model=self.model,
            max_tokens=config.MAX_TOKENS,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        return "".join(block.text for block in response.content if block.type == "text")


class OpenAIProvider(GenerationProvider):
    name = "openai"
    transient_errors = (
        _RetryableError,
        openai.RateLimitError,
        openai.APIConnectionError,
        openai.InternalServerError,
    )
    fatal_errors = (openai.AuthenticationError, openai.BadRequestError)

    def __init__(self, api_key: str, model: str = "", timeout: float = 0):
        super().__init__(api_key, model or config.OPENAI_MODEL,
                         timeout or config.GENERATION_TIMEOUT_SECONDS)
        self.client = openai.OpenAI(api_key=api_key, timeout=self.timeout)

    def _send(self, system_prompt: str, user_prompt: str) -> str:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            response_format={"type": "json_object"},
            max_completion_tokens=config.MAX_TOKENS,
        )
        return response.choices[0].message.content or ""


class GeminiProvider(GenerationProvider):
    name = "gemini"
    transient_errors = (_RetryableError, genai_errors.ServerError)
    fatal_errors = (genai_errors.ClientError,)

    def __init__(self, api_key: str, model: str = "", timeout: float = 0):
        super().__init__(api_key, model or config.GEMINI_MODEL,
                         timeout or config.GENERATION_TIMEOUT_SECONDS)
        self.client = genai.Client(
            api_key=api_key,
            http_options=genai_types.HttpOptions(timeout=int(self.timeout * 1000)),
        )

    def _send(self, system_prompt: str, user_prompt: str) -> str:
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=user_prompt,
                config=genai_types.GenerateContentConfig(
                    system_instruction=system_prompt,
                    response_mime_type="application/json",
                    max_output_tokens=config.MAX_TOKENS,
                ),
            )
        except genai_errors.ClientError as e:
            # Quota errors come back as client errors but clear up on their own
            if e.code == 429:
                raise _RetryableError(str(e)) from e
            raise
        return response.text or ""


PROVIDERS: Dict[str, Type[GenerationProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
    "gemini": GeminiProvider,
}


def create_provider(name: str, api_key: Optional[str] = None, timeout: Optional[float] = None) -> GenerationProvider:
    if name not in PROVIDERS:
        raise ValueError(f"Unknown AI provider '{name}'. Choose from: {', '.join(PROVIDERS)}")
    key = api_key if api_key is not None else config.PROVIDER_API_KEYS.get(name, "")
    if not key:
        raise UpstreamGenerationError(
            f"No API key configured. Set {config.PROVIDER_KEY_NAMES[name]} in .env", provider=name
        )
    return PROVIDERS[name](api_key=key, timeout=timeout or config.GENERATION_TIMEOUT_SECONDS)


# ----------------------------------------------------------------------
# Prompt + parsing
# ----------------------------------------------------------------------

def build_user_prompt(request: GenerationRequest) -> str:
    instructions = ", ".join(
        TYPE_INSTRUCTIONS.get(t, TYPE_INSTRUCTIONS["multiple"]) for t in request.question_types
    )
    return (
        f'Generate {request.number_of_questions} quiz questions about "{request.topic}".\n\n'
        f"Difficulty level: {request.difficulty} - {DIFFICULTY_GUIDE[request.difficulty]}\n\n"
        f"Question types to include: {instructions}\n\n"
        "For each question, provide:\n"
        "1. The question text\n"
        '2. The question type ("multiple", "truefalse", "text", or "ranking")\n'
        "3. For multiple choice: 4 options\n"
        '4. For true/false: options ["True", "False"]\n'
        "5. The correct answer (for ranking, provide the correct order as an array)\n"
        "6. A brief explanation of why the answer is correct\n\n"
        "Respond with a JSON object in this exact format:\n"
        '{"questions": [{"type": "multiple", "question": "Question text here?", '
        '"options": ["Option A", "Option B", "Option C", "Option D"], '
        '"correctAnswer": "Option B", "explanation": "Why this is correct"}]}\n\n'
        f"{random.choice(VARIETY_SEEDS)}\n"
        "Return ONLY the JSON object, no markdown formatting or code blocks."
    )


def _strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = [l for l in text.split("\n") if not l.strip().startswith("```")]
        text = "\n".join(lines)
    return text


def parse_generated_questions(response_text: str, requested: int, provider: str = "") -> List[Question]:
    """Parse a model response into validated questions.

    One invalid question rejects the whole batch. Extra questions are dropped.
    """
    text = _strip_code_fences(response_text)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise UpstreamGenerationError(
            f"Invalid JSON response: {e}. Response: {text[:200]}", provider=provider
        ) from e

    questions_data = data.get("questions") if isinstance(data, dict) else None
    if not isinstance(questions_data, list) or not questions_data:
        raise UpstreamGenerationError("No questions in response", provider=provider)

    errors: Dict[str, str] = {}
    for i, qd in enumerate(questions_data):
        errors.update(question_errors(qd, prefix=f"questions.{i}."))
    if errors:
        details = "; ".join(f"{k}: {v}" for k, v in errors.items())
        raise UpstreamGenerationError(f"Generated questions are invalid ({details})", provider=provider)

    # Fresh ids; the model's ids (if any) are not trusted to be unique
    questions = [_build_question({k: v for k, v in qd.items() if k != "id"}) for qd in questions_data]
    if len(questions) < requested:
        logger.warning("%s returned %d of %d requested questions", provider or "provider",
                       len(questions), requested)
    return questions[:requested]


# ----------------------------------------------------------------------
# Generator
# ----------------------------------------------------------------------

class QuestionGenerator:
    """Generates questions with the first provider that succeeds."""

    def __init__(self, providers: Sequence[GenerationProvider]):
        self.providers = list(providers)

    @classmethod
    def from_config(cls) -> "QuestionGenerator":
        names = [config.AI_PROVIDER]
        if config.AI_FALLBACK:
            names += [n for n in config.PROVIDER_ORDER if n != config.AI_PROVIDER]

        providers = []
        for name in names:
            if name in PROVIDERS and config.PROVIDER_API_KEYS.get(name):
                providers.append(create_provider(name))
            elif name == config.AI_PROVIDER:
                logger.warning("Primary AI provider '%s' has no API key configured", name)
        return cls(providers)

    @property
    def available(self) -> bool:
        return bool(self.providers)

    def generate_questions(self, request: GenerationRequest) -> List[Question]:
        if not self.providers:
            raise UpstreamGenerationError(
                "No AI provider configured. Set ANTHROPIC_API_KEY, OPENAI_API_KEY or GOOGLE_API_KEY in .env"
            )

        user_prompt = build_user_prompt(request)
        last_error: Optional[UpstreamGenerationError] = None
        for provider in self.providers:
            try:
                text = provider.complete(SYSTEM_PROMPT, user_prompt)
                questions = parse_generated_questions(text, request.number_of_questions, provider.name)
            except UpstreamGenerationError as e:
                logger.error("Question generation with %s failed: %s", provider.name, e)
                last_error = e
                continue
            logger.info("Generated %d questions about %r with %s",
                        len(questions), request.topic, provider.name)
            return questions

        raise last_error
