"""
Test doubles shared across the suite
"""

import json
from typing import Callable, List, Optional, Union

from redis.exceptions import ConnectionError as RedisConnectionError

from companion.services.llm_clients.openai_client import OpenAIClient

Reply = Union[str, dict, list, Exception]


class FakeLLM(OpenAIClient):
    """
    OpenAI client whose completions come from a scripted list or a responder
    function instead of the network. Dict and list replies are JSON encoded.
    """

    def __init__(
        self,
        replies: Optional[List[Reply]] = None,
        responder: Optional[Callable[[List[dict], bool], Reply]] = None,
    ):
        super().__init__(api_key="test-key", model="test-model", timeout=5)
        self.replies = list(replies or [])
        self.responder = responder
        self.calls: List[dict] = []

    async def chat_completion(
        self,
        messages: List[dict],
        model: Optional[str] = None,
        temperature: float = 0.3,
        json_mode: bool = False,
        max_tokens: Optional[int] = None,
    ) -> str:
        self.calls.append({"messages": messages, "json_mode": json_mode, "temperature": temperature})
        if self.responder is not None:
            reply = self.responder(messages, json_mode)
        elif self.replies:
            reply = self.replies.pop(0)
        else:
            raise ValueError("No scripted reply")

        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            return json.dumps(reply)
        return reply


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeRedis:
    """Answers the health check ping"""

    def __init__(self, fail: bool = False):
        self.fail = fail

    async def ping(self) -> bool:
        if self.fail:
            raise RedisConnectionError("redis down")
        return True
