"""Request interception: find the policy text and ask the policy engine.

The policy text of a chat request is the content of the LAST message whose
role is exactly ``"user"``; of a generate request, its ``prompt`` field.
Requests without policy text are allowed without consulting the engine, so a
request never costs more than one classification.
"""

from __future__ import annotations

from typing import Optional, Sequence

from moltguard.models.api import ChatMessage
from moltguard.models.policy import PolicyDecision
from moltguard.policy.engine import PolicyEngine
from moltguard.utils.logger import get_logger

logger = get_logger(__name__)

POLICY_ROLE = "user"


def extract_policy_text(messages: Sequence[ChatMessage]) -> Optional[str]:
    """Content of the last ``user`` message, or None when there is none."""
    for message in reversed(messages):
        if message.role == POLICY_ROLE:
            return message.text
    return None


class RequestInterceptor:
    def __init__(self, policy_engine: PolicyEngine) -> None:
        self.policy_engine = policy_engine

    async def check_text(self, text: Optional[str]) -> PolicyDecision:
        if text is None:
            logger.debug("policy_skipped", reason="no_policy_text")
            return PolicyDecision.allow()
        return await self.policy_engine.decide(text)

    async def check_messages(self, messages: Sequence[ChatMessage]) -> PolicyDecision:
        return await self.check_text(extract_policy_text(messages))

    async def check_prompt(self, prompt: Optional[str]) -> PolicyDecision:
        return await self.check_text(prompt)
