import itertools
import json
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import httpx

from app.core.clock import WorkflowClock
from app.core.config import Settings
from app.core.errors import ActivityRejectedError, TransientActivityError
from app.core.logging import get_logger
from app.core.retry import RetryPolicy

logger = get_logger(__name__)


@dataclass
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


ToolExecutor = Callable[[ToolCall], Awaitable[str]]


@dataclass
class AgentDefinition:
    agent_id: str
    name: str
    instructions: str
    tools: list[dict[str, Any]]
    model: str


class AgentBackend(ABC):
    """Chat-completion agents with instructions, conversation threads and tool calls."""

    @abstractmethod
    async def list_agents(self) -> dict[str, str]:
        """Existing agents as ``{name: agent_id}``."""
        raise NotImplementedError

    @abstractmethod
    async def create_agent(
        self, *, name: str, instructions: str, tools: list[dict[str, Any]], model: str
    ) -> str:
        raise NotImplementedError

    @abstractmethod
    async def create_thread(self) -> str:
        raise NotImplementedError

    @abstractmethod
    async def delete_thread(self, thread_id: str) -> None:
        """Drop a finished conversation; unknown ids are ignored."""
        raise NotImplementedError

    @abstractmethod
    async def chat_complete(
        self, *, agent_id: str, thread_id: str, prompt: str, tool_executor: ToolExecutor
    ) -> str:
        raise NotImplementedError


class _InMemoryAgentRegistry:
    def __init__(self) -> None:
        self.agents: dict[str, AgentDefinition] = {}
        self.threads: dict[str, list[dict[str, Any]]] = {}

    async def list_agents(self) -> dict[str, str]:
        return {definition.name: agent_id for agent_id, definition in self.agents.items()}

    async def create_agent(
        self, *, name: str, instructions: str, tools: list[dict[str, Any]], model: str
    ) -> str:
        agent_id = f"agent-{uuid.uuid4().hex[:12]}"
        self.agents[agent_id] = AgentDefinition(agent_id, name, instructions, tools, model)
        logger.info("agent created", extra={"extra": {"agent_name": name, "agent_id": agent_id, "model": model}})
        return agent_id

    async def create_thread(self) -> str:
        thread_id = f"thread-{uuid.uuid4().hex[:12]}"
        self.threads[thread_id] = []
        return thread_id

    async def delete_thread(self, thread_id: str) -> None:
        self.threads.pop(thread_id, None)

    def _agent(self, agent_id: str) -> AgentDefinition:
        definition = self.agents.get(agent_id)
        if definition is None:
            raise ValueError(f"Unknown agent: {agent_id}")
        return definition

    def _thread(self, thread_id: str) -> list[dict[str, Any]]:
        thread = self.threads.get(thread_id)
        if thread is None:
            raise ValueError(f"Unknown thread: {thread_id}")
        return thread


JOB_ID_PATTERN = re.compile(r"Job ID:\s*(\S+)")
# Specialist instructions ask for a JSON verdict; anything else is answered as a summary.
JSON_REPLY_MARKER = "Respond with JSON"


class MockAgentBackend(_InMemoryAgentRegistry, AgentBackend):
    """Deterministic backend for local runs: reads both subtitle files through the tools."""

    def __init__(self) -> None:
        super().__init__()
        self._call_ids = itertools.count(1)

    async def chat_complete(
        self, *, agent_id: str, thread_id: str, prompt: str, tool_executor: ToolExecutor
    ) -> str:
        agent = self._agent(agent_id)
        thread = self._thread(thread_id)
        thread.append({"role": "user", "content": prompt})

        if JSON_REPLY_MARKER not in agent.instructions:
            lines = [line.strip() for line in prompt.splitlines() if line.strip()]
            reply = "Summary (mock backend): " + " ".join(lines[:6])[:400]
            thread.append({"role": "assistant", "content": reply})
            return reply

        match = JOB_ID_PATTERN.search(prompt)
        job_id = match.group(1) if match else ""
        source = await tool_executor(
            ToolCall(id=f"call-{next(self._call_ids)}", name="GetSourceSubtitles", arguments={"jobId": job_id})
        )
        target = await tool_executor(
            ToolCall(id=f"call-{next(self._call_ids)}", name="GetTargetSubtitles", arguments={"jobId": job_id})
        )
        readable = "WEBVTT" in source and "WEBVTT" in target
        reply = json.dumps(
            {
                "score": 85 if readable else 50,
                "reasoning": f"{agent.name} (mock backend) reviewed {len(source)} source and "
                f"{len(target)} target characters.",
                "issues": []
                if readable
                else [{"severity": "major", "description": "Subtitle content could not be read"}],
            }
        )
        thread.append({"role": "assistant", "content": reply})
        return reply


class OpenAICompatibleAgentBackend(_InMemoryAgentRegistry, AgentBackend):
    """Agents on top of an OpenAI-compatible ``/chat/completions`` endpoint with tool calling."""

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        temperature: float,
        max_tokens: int,
        timeout_seconds: int,
        max_tool_rounds: int = 10,
        retry: RetryPolicy | None = None,
        clock: WorkflowClock | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("LLM_API_KEY is required when AGENT_BACKEND is not 'mock'")
        super().__init__()
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout_seconds = timeout_seconds
        self.max_tool_rounds = max_tool_rounds
        self.retry = retry or RetryPolicy()
        self.clock = clock or WorkflowClock()
        self.transport = transport

    async def _post_once(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self.transport) as client:
                response = await client.post(url, headers=headers, json=payload)
        except httpx.TransportError as exc:
            raise TransientActivityError(f"LLM request failed: {exc}") from exc

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientActivityError(f"LLM request failed ({response.status_code})")
        if response.status_code >= 400:
            raise ActivityRejectedError(
                f"LLM request failed ({response.status_code}): {response.text[:300]}"
            )
        return response.json()

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        return await self.retry.run(
            lambda: self._post_once(payload), name="chat_completions", sleep=self.clock.sleep
        )

    async def chat_complete(
        self, *, agent_id: str, thread_id: str, prompt: str, tool_executor: ToolExecutor
    ) -> str:
        agent = self._agent(agent_id)
        thread = self._thread(thread_id)
        thread.append({"role": "user", "content": prompt})

        for _ in range(self.max_tool_rounds):
            payload: dict[str, Any] = {
                "model": agent.model,
                "messages": [{"role": "system", "content": agent.instructions}, *thread],
                "temperature": self.temperature,
                "max_tokens": self.max_tokens,
            }
            if agent.tools:
                payload["tools"] = agent.tools
            data = await self._post(payload)
            message = (data.get("choices") or [{}])[0].get("message") or {}
            tool_calls = message.get("tool_calls") or []

            if not tool_calls:
                content = str(message.get("content") or "").strip()
                if not content:
                    raise RuntimeError("LLM response missing content")
                thread.append({"role": "assistant", "content": content})
                return content

            thread.append({"role": "assistant", "content": message.get("content"), "tool_calls": tool_calls})
            for raw_call in tool_calls:
                function = raw_call.get("function") or {}
                try:
                    arguments = json.loads(function.get("arguments") or "{}")
                except ValueError:
                    arguments = {}
                call = ToolCall(
                    id=str(raw_call.get("id") or ""),
                    name=str(function.get("name") or ""),
                    arguments=arguments if isinstance(arguments, dict) else {},
                )
                output = await tool_executor(call)
                thread.append({"role": "tool", "tool_call_id": call.id, "content": output})

        raise RuntimeError(f"Agent {agent.name} exceeded {self.max_tool_rounds} tool rounds")


def build_agent_backend(settings: Settings) -> AgentBackend:
    raw_backend = (settings.agent_backend or "mock").strip()
    backend = raw_backend.lower()

    if backend.startswith("sk-") or backend.startswith("gsk_"):
        raise ValueError(
            "AGENT_BACKEND appears to contain an API key. Set AGENT_BACKEND to 'openai' or 'groq' "
            "and move the key to LLM_API_KEY."
        )

    if backend == "mock":
        return MockAgentBackend()

    base_url = settings.llm_base_url
    if backend == "groq":
        if not base_url or base_url == "https://api.openai.com/v1":
            base_url = "https://api.groq.com/openai/v1"
    elif backend not in {"openai", "openai_compatible"}:
        raise ValueError("Unsupported AGENT_BACKEND. Supported values: mock, openai, groq.")

    return OpenAICompatibleAgentBackend(
        api_key=settings.llm_api_key,
        base_url=base_url,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout_seconds=settings.llm_timeout_seconds,
        max_tool_rounds=settings.agent_max_tool_rounds,
        retry=RetryPolicy.from_settings(settings),
    )
