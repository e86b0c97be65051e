"""Shared fixtures: executors over fake provider APIs and an orchestrator factory."""

from typing import (
    Any,
    Callable,
    List,
    Tuple,
)

import pytest
from fakes import (
    GMAIL_BASE,
    GRAPH_BASE,
    FakeLLM,
    FakeProviderAPI,
    SleepRecorder,
    fixed_now,
)

from workmate.agent.agent_loop import Orchestrator
from workmate.agent.classifier import QueryClassifier
from workmate.agent.formatter import ResponseFormatter
from workmate.agent.gateway import ToolGateway
from workmate.agent.planner import ToolCallPlanner
from workmate.providers.gmail import GmailExecutor
from workmate.providers.retry import RetryPolicy
from workmate.providers.teams import TeamsExecutor


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def gmail_api() -> FakeProviderAPI:
    return FakeProviderAPI()


@pytest.fixture
def teams_api() -> FakeProviderAPI:
    return FakeProviderAPI()


@pytest.fixture
def gmail(gmail_api: FakeProviderAPI, sleeps: SleepRecorder) -> GmailExecutor:
    return GmailExecutor(
        gmail_api.client(),
        base_url=GMAIL_BASE,
        retry=RetryPolicy(max_attempts=4, sleep=sleeps),
    )


@pytest.fixture
def teams(teams_api: FakeProviderAPI, sleeps: SleepRecorder) -> TeamsExecutor:
    return TeamsExecutor(
        teams_api.client(),
        base_url=GRAPH_BASE,
        retry=RetryPolicy(max_attempts=4, sleep=sleeps),
        now=fixed_now(),
    )


@pytest.fixture
def gateway(gmail: GmailExecutor, teams: TeamsExecutor) -> ToolGateway:
    return ToolGateway({"gmail": gmail, "teams": teams})


@pytest.fixture
def make_orchestrator(
    gateway: ToolGateway,
) -> Callable[..., Tuple[Orchestrator, FakeLLM]]:
    """Build an orchestrator whose every LLM call pops the next scripted reply."""

    def build(replies: List[Any], max_steps: int = 5) -> Tuple[Orchestrator, FakeLLM]:
        llm = FakeLLM(replies)
        orchestrator = Orchestrator(
            gateway=gateway,
            classifier=QueryClassifier(llm),
            planner=ToolCallPlanner(llm),
            formatter=ResponseFormatter(llm),
            llm=llm,
            max_steps=max_steps,
        )
        return orchestrator, llm

    return build
