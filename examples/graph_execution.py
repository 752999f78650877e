#!/usr/bin/env python3
"""Graph execution example.

Builds a small content pipeline with WorkflowBuilder: summarize an
article, pull keywords out of the summary, and merge both into one
result. Reads PLEXUS_BASE_URL, PLEXUS_API_KEY and PLEXUS_MODEL.

Usage:
    python examples/graph_execution.py
"""

import asyncio
import json

from plexus import ExecutionContext, WorkflowBuilder
from plexus.config import build_provider, load_config
from plexus.core.schemas import KeywordAnalysis

ARTICLE = (
    "Artificial intelligence is transforming how software gets written. "
    "Code assistants now draft functions, review pull requests and explain "
    "unfamiliar codebases, while developers spend more time on design."
)


async def main():
    config = load_config()

    graph = (
        WorkflowBuilder("content-pipeline", model=config.model)
        .input(ARTICLE, id="article")
        .generate("Summarize this in two sentences:\n{{input}}", id="summary")
        .extract(KeywordAnalysis, id="keywords")
        .merge("summary", "keywords", id="combined")
        .output(id="result")
        .build()
    )

    print(f"Execution order: {' -> '.join(graph.execution_order())}")
    for problem in graph.validate():
        print(f"Warning: {problem}")

    async with build_provider(config) as provider:
        context = ExecutionContext(provider=provider, model=config.model)
        results = await graph.execute(context)

    print()
    print(json.dumps(results["result"], indent=2, default=str))
    print()
    print(f"Usage: {context.usage.to_metadata()}")


if __name__ == "__main__":
    asyncio.run(main())
