from __future__ import annotations

"""
MindGraph OpenAI wrappers
- OpenAIEmbedder: text -> fixed-length vector
- OpenAIReasoner: (instruction, context) -> raw model text

Both share one client configured with the per-call deadline from Settings and
client-side retries disabled; callers retry whole turns.
"""

import logging
from typing import List, Optional

import openai
from openai import OpenAI

from mindgraph.config import Settings
from mindgraph.errors import DependencyTimeout, DependencyUnavailable

logger = logging.getLogger(__name__)


def build_client(settings: Settings) -> OpenAI:
    return OpenAI(
        api_key=settings.openai_api_key,
        timeout=settings.request_timeout,
        max_retries=0,
    )


class OpenAIEmbedder:
    def __init__(self, settings: Settings, client: Optional[OpenAI] = None) -> None:
        self.settings = settings
        self.model = settings.embed_model
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = build_client(self.settings)
        return self._client

    def embed(self, text: str) -> List[float]:
        try:
            response = self.client.embeddings.create(input=[text], model=self.model)
        except openai.APITimeoutError as e:
            raise DependencyTimeout(f"embedding timed out after {self.settings.request_timeout}s") from e
        except openai.OpenAIError as e:
            raise DependencyUnavailable(f"embedding failed: {e}") from e
        if not response.data:
            raise DependencyUnavailable("embedding response contained no vectors")
        return list(response.data[0].embedding)


class OpenAIReasoner:
    def __init__(self, settings: Settings, client: Optional[OpenAI] = None) -> None:
        self.settings = settings
        self.model = settings.model
        self.temperature = settings.temperature
        self._client = client

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = build_client(self.settings)
        return self._client

    def generate(self, instruction: str, context: str) -> str:
        """Single chat completion: ``instruction`` as system, ``context`` as user."""
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": instruction},
                    {"role": "user", "content": context},
                ],
                temperature=self.temperature,
            )
        except openai.APITimeoutError as e:
            raise DependencyTimeout(f"reasoner timed out after {self.settings.request_timeout}s") from e
        except openai.OpenAIError as e:
            raise DependencyUnavailable(f"reasoner call failed: {e}") from e

        if not response.choices:
            raise DependencyUnavailable("reasoner response contained no choices")
        content = response.choices[0].message.content or ""
        logger.debug("reasoner returned %d chars", len(content))
        return content.strip()
