import json
import logging
from typing import Optional

from django.conf import settings
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from apps.common.exceptions import ServiceNotConfigured, UpstreamServiceError

logger = logging.getLogger(__name__)


class LLMResponseError(UpstreamServiceError):
    default_detail = "The language model returned an invalid response."
    default_code = "llm_invalid_response"


def make_generate_config(
    schema: Optional[dict] = None,
    system_instruction: Optional[str] = None,
) -> Optional[types.GenerateContentConfig]:
    """
    Builds GenerateContentConfig:
      - Structured output: response_mime_type + response_schema
      - Optional system instruction
    """
    if not any([schema, system_instruction]):
        return None
    cfg_kwargs: dict = {}
    if schema:
        cfg_kwargs["response_mime_type"] = "application/json"
        cfg_kwargs["response_schema"] = schema
    if system_instruction:
        cfg_kwargs["system_instruction"] = system_instruction
    return types.GenerateContentConfig(**cfg_kwargs)


def load_json_response(resp):
    text = getattr(resp, "text", None) or ""
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error(
            "Model returned invalid JSON",
            extra={"error": str(exc), "preview": text[:500]},
        )
        raise LLMResponseError() from exc


class GeminiClient:
    """
    Thin wrapper around ``genai.Client``. One instance is built at startup
    by ``AIConfig.ready`` and handed to the content service.
    """

    def __init__(self, api_key: Optional[str], model: str):
        self.model = model
        self._client = genai.Client(api_key=api_key) if api_key else None

    @classmethod
    def from_settings(cls):
        return cls(api_key=settings.GEMINI_API_KEY, model=settings.GEMINI_CHAT_MODEL)

    @property
    def configured(self) -> bool:
        return self._client is not None

    def generate(self, contents, schema: Optional[dict] = None, system_instruction: Optional[str] = None):
        if not self.configured:
            raise ServiceNotConfigured("Content generation is not configured.")
        cfg = make_generate_config(schema=schema, system_instruction=system_instruction)
        try:
            return self._client.models.generate_content(
                model=self.model,
                contents=contents,
                config=cfg,
            )
        except genai_errors.APIError as exc:
            logger.exception("Gemini request failed (model=%s)", self.model)
            raise UpstreamServiceError("Content generation failed.") from exc

    def generate_json(self, prompt: str, schema: Optional[dict] = None, system_instruction: Optional[str] = None):
        contents = [types.Content(role="user", parts=[types.Part(text=prompt)])]
        resp = self.generate(contents, schema=schema, system_instruction=system_instruction)
        return load_json_response(resp)
