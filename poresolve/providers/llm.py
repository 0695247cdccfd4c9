"""LLM providers for the tiebreak stage."""

from typing import Optional

from ..errors import MalformedProviderResponse
from ..logger import get_logger
from ..retry import RetryPolicy
from .common import auth_headers, post_json

logger = get_logger()


class OpenAIChatProvider:
    """Chat completions constrained to a single JSON object."""

    name = "llm"

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 15.0,
        policy: Optional[RetryPolicy] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.url = f"{base_url.rstrip('/')}/chat/completions"
        self.timeout = timeout
        self.policy = policy

    def complete(self, prompt) -> str:
        """Send a prompt with .system and .user text; return the raw reply."""
        payload = {
            "model": self.model,
            "temperature": 0,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": prompt.system},
                {"role": "user", "content": prompt.user},
            ],
        }
        body = post_json(
            self.url,
            payload,
            auth_headers(self.api_key, self.name),
            self.timeout,
            policy=self.policy,
            provider=self.name,
        )
        try:
            content = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise MalformedProviderResponse("completion missing choices[0].message.content", raw=str(body)[:500]) from e
        if not isinstance(content, str):
            raise MalformedProviderResponse("completion content is not text", raw=str(content)[:500])
        logger.debug("Completion received", model=self.model, chars=len(content))
        return content
