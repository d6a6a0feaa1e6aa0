# guardian_post/services/openai_service.py
from __future__ import annotations

import asyncio
import json
import re
import time
from typing import Any, Dict, Optional, Tuple, Type

from openai import AsyncOpenAI  # pip install openai>=1
from pydantic import BaseModel, ValidationError

from guardian_post.core.logging import get_logger

logger = get_logger().bind(module="openai_service")

_JSON_HINT = (
    "Respond with exactly one valid JSON object, no explanation, "
    "no extra text, no markdown, no code fences."
)


class ProviderError(RuntimeError):
    """The text-generation provider failed or answered with an unusable payload."""


def _pydantic_schema_dict(model: Type[BaseModel]) -> Dict[str, Any]:
    return model.model_json_schema(by_alias=True)  # pydantic v2

def _extract_first_json(text: str) -> str:
    """
    Lenient parser: take the first {...} block and drop trailing commas.
    """
    m = re.search(r"\{.*\}", text, flags=re.DOTALL)
    candidate = m.group(0) if m else text.strip()
    candidate = re.sub(r",\s*([}\]])", r"\1", candidate)
    return candidate.strip()

def _to_jsonable(obj: Any) -> Any:
    """
    Turn OpenAI SDK objects (e.g. usage) into JSON-serialisable dicts.
    """
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, (list, tuple)):
        return [_to_jsonable(x) for x in obj]
    if isinstance(obj, dict):
        return {k: _to_jsonable(v) for k, v in obj.items()}
    try:
        return {k: _to_jsonable(v) for k, v in obj.model_dump().items()}  # type: ignore[attr-defined]
    except Exception:
        pass
    return str(obj)


class OpenAIService:
    """
    JSON-forced chat completion service with pydantic validation.
    The SDK's own retries are disabled; the caller owns the latency budget.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str,
        max_retries: int = 1,
        timeout_s: float = 30.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.model = model
        self.max_retries = max_retries
        self.timeout_s = timeout_s
        self.client = client or AsyncOpenAI(api_key=api_key, max_retries=0, timeout=timeout_s)

    def _build_messages(self, system_prompt: str, user_prompt: str, schema: Dict[str, Any]) -> list[dict]:
        schema_hint = json.dumps(schema, ensure_ascii=False)
        system = (
            f"{system_prompt}\n\n{_JSON_HINT}\n"
            f"The JSON must match this JSON Schema exactly:\n{schema_hint}"
        )
        user = f"{user_prompt}\n\nAgain: {_JSON_HINT}"
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    async def generate_json(
        self,
        system_prompt: str,
        user_prompt: str,
        response_model: Type[BaseModel],
        action_type: str = "generic",
        news_id: Optional[str] = None,
    ) -> Tuple[BaseModel, Dict[str, Any]]:
        """
        Returns: (parsed_model_instance, meta_dict)
        Raises ProviderError once every attempt has failed.
        """
        schema = _pydantic_schema_dict(response_model)
        messages = self._build_messages(system_prompt, user_prompt, schema)

        last_err: Optional[Exception] = None
        t0 = time.perf_counter()

        for attempt in range(self.max_retries + 1):
            try:
                completion = await self.client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=0.3,
                    response_format={"type": "json_object"},
                    timeout=self.timeout_s,
                )
                raw_text = completion.choices[0].message.content or ""
                usage_plain = _to_jsonable(getattr(completion, "usage", None))

                data = json.loads(_extract_first_json(raw_text))
                parsed = response_model.model_validate(data)

                duration_ms = int((time.perf_counter() - t0) * 1000)
                logger.info(
                    "openai_generate_success",
                    action_type=action_type,
                    news_id=news_id,
                    model=self.model,
                    attempt=attempt,
                    duration_ms=duration_ms,
                )
                return parsed, {
                    "ok": True,
                    "model": self.model,
                    "raw_text": raw_text,
                    "usage": usage_plain,
                    "duration_ms": duration_ms,
                }

            except (ValidationError, json.JSONDecodeError) as e:
                last_err = e
                messages[-1]["content"] = (
                    f"{user_prompt}\n\nNOTE: {_JSON_HINT}\n"
                    "Answer exactly according to the schema, without any additional text."
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(0.5 * (2 ** attempt))
                continue

            except Exception as e:
                last_err = e
                if attempt < self.max_retries:
                    await asyncio.sleep(0.7 * (2 ** attempt))
                continue

        duration_ms = int((time.perf_counter() - t0) * 1000)
        logger.warning(
            "openai_generate_failed",
            action_type=action_type,
            news_id=news_id,
            model=self.model,
            duration_ms=duration_ms,
            error=str(last_err),
        )
        raise ProviderError(f"OpenAIService failed after retries: {last_err}")
