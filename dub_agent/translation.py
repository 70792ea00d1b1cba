from __future__ import annotations

import logging
import time
from typing import Optional

import requests
from openai import APIError, OpenAI

from .config import TranslationConfig, require_api_key

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
Translate Chinese to natural spoken English. Preserve timing, emotion, and pauses.
STRICT RULES:
- Translate ONLY spoken content
- NO explanations
- NO commentary
- NO AI meta language
"""


class BaseTranslator:
    def translate(self, text: str) -> str:
        raise NotImplementedError


class OpenAITranslator(BaseTranslator):
    """Translate dialogue lines with an OpenAI chat model."""

    def __init__(self, config: TranslationConfig, client: Optional[OpenAI] = None):
        self.config = config
        if client is not None and config.api_base:
            logger.warning("Ignoring provided OpenAI client because custom api_base was supplied.")
            client = None
        if client is None:
            kwargs = {"api_key": require_api_key(config.api_key_env, "translation")}
            if config.api_base:
                kwargs["base_url"] = config.api_base
            client = OpenAI(**kwargs)
        self.client = client

    def translate(self, text: str) -> str:
        for attempt in range(1, self.config.max_retries + 1):
            try:
                response = self.client.chat.completions.create(
                    model=self.config.model,
                    temperature=self.config.temperature,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": text},
                    ],
                )
                content = (response.choices[0].message.content or "").strip()
                logger.debug("Translation result: %s -> %s", text, content)
                return content
            except APIError as exc:
                logger.warning("Translation attempt %s failed: %s", attempt, exc)
                if attempt >= self.config.max_retries:
                    raise
                time.sleep(self.config.retry_delay)
        raise RuntimeError("Unreachable translation retry loop")


class DeepSeekTranslator(BaseTranslator):
    """Translate dialogue lines via the DeepSeek REST API."""

    def __init__(self, config: TranslationConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.api_key = require_api_key(config.api_key_env or "DEEPSEEK_API_KEY", "DeepSeek translation")
        self.base_url = (config.api_base or "https://api.deepseek.com").rstrip("/")
        self.session = session or requests.Session()

    def translate(self, text: str) -> str:
        url = f"{self.base_url}/v1/chat/completions"
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        payload = {
            "model": self.config.model or "deepseek-chat",
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": text},
            ],
            "temperature": self.config.temperature,
        }
        for attempt in range(1, self.config.max_retries + 1):
            try:
                response = self.session.post(url, headers=headers, json=payload, timeout=60)
                if response.status_code >= 400:
                    logger.warning("DeepSeek translation failed (HTTP %s): %s", response.status_code, response.text)
                    raise RuntimeError(response.text)
                data = response.json()
                content = data["choices"][0]["message"]["content"].strip()
                logger.debug("DeepSeek translation result: %s -> %s", text, content)
                return content
            except (requests.RequestException, RuntimeError, KeyError, ValueError) as exc:
                logger.warning("DeepSeek translation attempt %s failed: %s", attempt, exc)
                if attempt >= self.config.max_retries:
                    raise
                time.sleep(self.config.retry_delay)
        raise RuntimeError("Unreachable translation retry loop")


def build_translator(config: TranslationConfig, client: Optional[OpenAI] = None) -> BaseTranslator:
    provider = (config.provider or "openai").lower()
    if provider == "openai":
        return OpenAITranslator(config=config, client=client)
    if provider == "deepseek":
        return DeepSeekTranslator(config=config)
    raise ValueError(f"Unsupported translation provider: {config.provider}")
