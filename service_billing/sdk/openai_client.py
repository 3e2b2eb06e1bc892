"""
OpenAI chat adapter.

Bills chat completions by total tokens consumed.
"""

from typing import Any, Dict, List, Optional

from openai import OpenAI

from ..core.adapters import AdapterResult
from ..core.errors import InvalidUsage
from ..storage.store import TransactionHandle


class OpenAIChatAdapter:
    """Service adapter that forwards chat messages to OpenAI.

    The payload must carry a non-empty ``messages`` list; ``temperature``
    and ``max_tokens`` are passed through when present. Units are the
    response's total token count. All failures are loud so a request is
    never billed without a usage figure.
    """

    def __init__(self, id: str, model: str, unit_price: int,
                 name: Optional[str] = None, client: Optional[OpenAI] = None):
        """Initialize the chat adapter.

        Args:
            id: Service id the adapter is registered under (required)
            model: OpenAI model name (required)
            unit_price: Price per token in minor units
            name: Display name, defaults to the id
            client: Preconfigured OpenAI client, created on first use if omitted

        Raises:
            ValueError: If id or model is missing/empty
        """
        if not id or not id.strip():
            raise ValueError("id is required and cannot be empty")
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        if isinstance(unit_price, bool) or not isinstance(unit_price, int) or unit_price < 0:
            raise InvalidUsage(f"unit_price for '{id}' must be a non-negative integer")

        self.id = id
        self.name = name or id
        self.model = model
        self._unit_price = unit_price
        self._client = client

    @property
    def client(self) -> OpenAI:
        """OpenAI client, created on first use so credentials are only
        required once a request is actually sent."""
        if self._client is None:
            self._client = OpenAI()
        return self._client

    def get_cost_per_unit(self) -> int:
        return self._unit_price

    def execute(self, payload: Dict[str, Any], tx: Optional[TransactionHandle] = None) -> AdapterResult:
        """Create a chat completion and report its token usage.

        Raises:
            ValueError: If messages is empty or the response has no usage
            OpenAI API errors: Propagated without modification
        """
        messages: List[Dict[str, str]] = (payload or {}).get("messages") or []
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        options = {
            key: payload[key]
            for key in ("temperature", "max_tokens")
            if payload.get(key) is not None
        }
        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            **options
        )

        usage = response.usage
        if not usage:
            raise ValueError("OpenAI response missing usage information")

        content = response.choices[0].message.content if response.choices else None
        return AdapterResult(
            data={
                "id": response.id,
                "model": self.model,
                "content": content,
                "usage": {
                    "prompt_tokens": usage.prompt_tokens,
                    "completion_tokens": usage.completion_tokens,
                    "total_tokens": usage.total_tokens,
                },
            },
            estimated_units=usage.total_tokens,
        )
