# llm_client.py
import os
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv
from openai import OpenAI, OpenAIError

from errors import ModelTransportError

load_dotenv()
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallPreset:
    max_tokens: int
    temperature: float


@dataclass(frozen=True)
class ModelConfig:
    """
    Immutable model settings handed to every stage at construction time.
    generation favours determinism (parseable JSON), synthesis and
    conversational favour readable prose.
    """
    model: str = "gpt-4o-mini"
    embed_model: str = "text-embedding-3-small"
    embed_dimensions: int = 1024
    timeout_seconds: float = 30.0
    generation: CallPreset = field(default_factory=lambda: CallPreset(max_tokens=500, temperature=0.0))
    synthesis: CallPreset = field(default_factory=lambda: CallPreset(max_tokens=2000, temperature=0.3))
    conversational: CallPreset = field(default_factory=lambda: CallPreset(max_tokens=1000, temperature=0.3))

    @classmethod
    def from_env(cls) -> "ModelConfig":
        return cls(
            model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
            embed_model=os.getenv("EMBED_MODEL", "text-embedding-3-small"),
            embed_dimensions=int(os.getenv("EMBED_DIMENSIONS", "1024")),
            timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", "30")),
        )


class LLMClient:
    """Thin wrapper over the OpenAI SDK: one chat call, one embedding call."""

    def __init__(self, config: Optional[ModelConfig] = None, client: Optional[OpenAI] = None):
        self.config = config or ModelConfig.from_env()
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=os.getenv("OPENAI_API_KEY"))
        return self._client

    def complete(self, system_prompt: str, user_message: str, preset: CallPreset) -> str:
        try:
            resp = self.client.chat.completions.create(
                model=self.config.model,
                temperature=preset.temperature,
                max_tokens=preset.max_tokens,
                timeout=self.config.timeout_seconds,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_message},
                ],
            )
        except OpenAIError as e:
            logger.error("chat completion failed (%s): %s", self.config.model, e)
            raise ModelTransportError(str(e)) from e
        content = resp.choices[0].message.content or ""
        return content.strip()

    def embed(self, text: str) -> List[float]:
        try:
            out = self.client.embeddings.create(
                model=self.config.embed_model,
                input=text,
                dimensions=self.config.embed_dimensions,
                timeout=self.config.timeout_seconds,
            )
        except OpenAIError as e:
            logger.error("embedding failed (%s): %s", self.config.embed_model, e)
            raise ModelTransportError(str(e)) from e
        return out.data[0].embedding
