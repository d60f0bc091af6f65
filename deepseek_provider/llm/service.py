"""Prompt-to-payload adapter with role selection.

Architectural role:
    Provides the canonical text-generation entrypoint used by the CLI and HTTP
    adapters. Holds one `ChatCompletionClient` per role, built once from
    `RoleConfigs`, so request logic never reads the environment.

Model call flow:
    prompt -> `route_prompt` (role) -> message list -> `client.send(...)`.

Planner routing:
    Prompts starting with `/plan` go to the planner role with the command
    prefix stripped; everything else goes to the lead role unless a role is
    passed explicitly.
"""

import logging

from deepseek_provider.llm.client import ChatCompletionClient
from deepseek_provider.llm.provider_config import Role, RoleConfigs

logger = logging.getLogger(__name__)

PLAN_COMMAND = "/plan"


def route_prompt(prompt: str):
    """Return `(role, prompt)` after handling the `/plan` command prefix."""
    stripped = prompt.strip()
    head, _, rest = stripped.partition(" ")
    if head.lower() == PLAN_COMMAND:
        return Role.PLANNER, rest.strip()
    return Role.LEAD, stripped


def build_messages(prompt: str, system: str | None = None, history=None) -> list:
    """Assemble `[system?, *history, user]` in conversation order."""
    messages = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.extend(history or [])
    messages.append({"role": "user", "content": prompt})
    return messages


class LLMService:
    """Role-aware facade over one `ChatCompletionClient` per configured role."""

    def __init__(self, role_configs: RoleConfigs, session=None):
        self.role_configs = role_configs
        self.clients = {
            role: ChatCompletionClient(config, session=session)
            for role, config in role_configs.items()
        }

    def client(self, role=Role.LEAD) -> ChatCompletionClient:
        return self.clients[Role(role)]

    def role_for_model(self, model: str):
        """Map a role alias or configured model id to its role, else `None`.

        Role aliases win over model ids; when both roles share a model id the
        lead role is chosen.
        """
        if model in (role.value for role in Role):
            return Role(model)
        for role in Role:
            if role in self.role_configs and self.role_configs[role].model == model:
                return role
        return None

    def generate_answer(
        self,
        prompt: str,
        role=None,
        stream: bool = False,
        system: str | None = None,
        history=None,
        **params,
    ):
        """Invoke the model for `role` (or the role implied by the prompt).

        Returns:
            `ChatResponse` for non-stream calls, `ChatStream` for stream calls.

        Failure scenarios:
            `ValueError` for an empty prompt; `ClientError` from the client.
        """
        routed_role, text = route_prompt(prompt)
        role = Role(role) if role is not None else routed_role
        if not text:
            raise ValueError("Prompt is empty")

        logger.debug("Routing prompt to %s role", role.value)
        messages = build_messages(text, system=system, history=history)
        return self.client(role).send(messages, stream=stream, **params)

    def close(self) -> None:
        for client in self.clients.values():
            client.close()
