from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import List, Optional, Sequence

from agentloop.agents.validator import DEFAULT_PROMPT as VALIDATOR_PROMPT
from agentloop.agents.validator import ValidatorAgent
from agentloop.agents.worker import DEFAULT_PROMPT as WORKER_PROMPT
from agentloop.agents.worker import WorkerAgent, render
from agentloop.memory.drivers import FileDriver, InMemoryDriver, StorageDriver
from agentloop.telemetry.logging import setup_logging
from agentloop.utils.llm_clients import (
    CompletionProvider,
    EchoCompletionProvider,
    OpenAICompletionProvider,
)
from agentloop.utils.prompts import PromptStore
from agentloop.utils.settings import AppConfig, load_config
from agentloop.workflows.orchestrator import GraphOrchestrator


def build_provider(config: AppConfig) -> CompletionProvider:
    if config.llm.provider == "openai":
        return OpenAICompletionProvider(api_key=config.llm.api_key(), base_url=config.llm.base_url)
    return EchoCompletionProvider()


def build_storage(config: AppConfig) -> StorageDriver:
    if config.storage.driver == "file":
        return FileDriver(config.storage.root)
    return InMemoryDriver()


def build_agents(config: AppConfig, provider: CompletionProvider, prompts: PromptStore) -> List:
    worker = WorkerAgent(
        provider=provider,
        prompts=prompts,
        model=config.llm.model,
        temperature=config.llm.temperature,
        max_iterations=config.workflow.worker_max_iterations,
    )
    validator = ValidatorAgent(
        provider=provider,
        prompts=prompts,
        model=config.llm.model,
        max_iterations=config.workflow.validator_max_iterations,
    )
    return [worker, validator]


def build_orchestrator(config: AppConfig) -> GraphOrchestrator:
    provider = build_provider(config)
    prompts = PromptStore(
        directory=config.prompts.directory,
        defaults={"worker": WORKER_PROMPT, "validator": VALIDATOR_PROMPT},
    )
    return GraphOrchestrator(
        agents=build_agents(config, provider, prompts),
        start="worker",
        storage=build_storage(config),
        max_total_iterations=config.workflow.max_total_iterations,
    )


async def _run(orchestrator: GraphOrchestrator, task: str, thread_id: Optional[str], show_history: bool) -> int:
    result = await orchestrator.run(task, thread_id=thread_id)
    print(f"[thread] {result.thread_id}")
    print(f"[status] {result.status.value} after {result.iterations} step(s)")
    if result.ok:
        print(f"\n{render(result.content)}")
    else:
        print(f"[error] {result.error}", file=sys.stderr)

    if show_history:
        thread = await orchestrator.get_thread(result.thread_id)
        for index, message in enumerate(thread.history if thread else []):
            print(f"\n#{index} {message.sender} -> {message.next} ({message.kind.value})")
            print(render(message.content))
            if message.metadata:
                print(json.dumps(message.metadata, default=str, sort_keys=True))
    return 0 if result.ok else 1


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the worker/validator agent workflow.")
    parser.add_argument("task", help="Task statement for the agents.")
    parser.add_argument("--env", default="base", help="Config environment (base, dev, prod, ...).")
    parser.add_argument("--config-dir", default="configs", help="Directory holding <env>.yaml files.")
    parser.add_argument("--thread-id", default=None, help="Continue or resume an existing thread.")
    parser.add_argument("--show-history", action="store_true", help="Print the full message trace.")
    args = parser.parse_args(argv)

    config = load_config(args.env, config_dir=args.config_dir)
    setup_logging(config.logging.level, config.logging.format)
    orchestrator = build_orchestrator(config)
    return asyncio.run(_run(orchestrator, args.task, args.thread_id, args.show_history))


if __name__ == "__main__":
    sys.exit(main())
