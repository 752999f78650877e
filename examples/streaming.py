#!/usr/bin/env python3
"""Pattern streaming example.

Runs the retry pattern and prints each progress event as it arrives,
the same events the server sends as Server-Sent Events.

Usage:
    python examples/streaming.py "Write a limerick about queues"
"""

import asyncio
import sys

from plexus import ExecutionContext, ProgressChannel, get_pattern
from plexus.config import build_provider, load_config


async def print_events(channel: ProgressChannel):
    async for event in channel:
        print(f"[{event.kind.value}] {event.payload}")


async def main(prompt: str):
    config = load_config()
    channel = ProgressChannel()

    async with build_provider(config) as provider:
        context = ExecutionContext(provider=provider, channel=channel, model=config.model)
        printer = asyncio.create_task(print_events(channel))
        result = await get_pattern("retry").run(prompt, context)
        await printer

    print()
    print("Succeeded" if result.success else "Failed")


if __name__ == "__main__":
    asyncio.run(main(" ".join(sys.argv[1:]) or "Write a haiku about retries"))
