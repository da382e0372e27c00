"""Interactive chat against a DIP or Coze agent.

Demonstrates:
- Configuring a StreamClient with a backend strategy
- Using Transcript as the render host
- Registering a custom tool extractor
- Following a conversation across turns

Usage:
    STREAMDOC_TOKEN=... uv run examples/chat_example.py --backend dip --agent-key my-agent --agent-id 123
    STREAMDOC_TOKEN=... uv run examples/chat_example.py --backend coze --bot-id 7400 \
        --base-url https://api.coze.cn --trace
"""

import argparse
import asyncio
import uuid

from streamdoc.blocks import BlockType, RenderBlock, ToolCallData
from streamdoc.client import ClientConfig, StreamClient
from streamdoc.extractors import default_registry
from streamdoc.strategies import BackendStrategy, CozeStrategy, DIPStrategy
from streamdoc.transcript import Transcript


def setup_tracing(service_name: str):
    from opentelemetry import trace
    from opentelemetry.sdk.resources import SERVICE_NAME, Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import (
        SimpleSpanProcessor, ConsoleSpanExporter,
    )
    from streamdoc.instrumentation import instrument

    provider = TracerProvider(
        resource=Resource({SERVICE_NAME: service_name})
    )
    provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    trace.set_tracer_provider(provider)
    instrument()


def make_strategy(args) -> BackendStrategy:
    if args.backend == "coze":
        if not args.bot_id:
            raise SystemExit("--bot-id is required for the coze backend")
        return CozeStrategy(bot_id=args.bot_id)
    if not args.agent_key:
        raise SystemExit("--agent-key is required for the dip backend")
    return DIPStrategy(agent_key=args.agent_key, agent_id=args.agent_id)


def extract_weather(skill_info, answer):
    """Render a hypothetical ``get_weather`` skill."""
    if not isinstance(answer, dict) or "temperature" not in answer:
        return None
    city = answer.get("city", "?")
    return RenderBlock(
        type=BlockType.TOOL,
        content=ToolCallData(
            name="get_weather",
            title=f"Weather in {city}",
            input=city,
            output=f"{answer['temperature']}°",
        ),
    )


class ConsoleTranscript(Transcript):
    """Prints tool blocks as they arrive."""

    def on_tool_block(self, display_id, tool_name, block) -> None:
        super().on_tool_block(display_id, tool_name, block)
        title = getattr(block.content, "title", None) or getattr(block.content, "input", "")
        print(f"  [{tool_name}] {title}")


async def main(args):
    if args.trace:
        setup_tracing("chat-example")

    extractors = default_registry()
    extractors.register("get_weather", extract_weather)

    transcript = ConsoleTranscript()
    config = ClientConfig(base_url=args.base_url) if args.base_url else ClientConfig()
    client = StreamClient(config, make_strategy(args), transcript, extractors)

    conversation_id = None
    while True:
        user_input = input("You: ")
        if user_input.strip().lower() in ("quit", "exit"):
            break
        transcript.add_user_message(str(uuid.uuid4()), user_input)
        result = await client.send_message(user_input, conversation_id=conversation_id)
        conversation_id = (result.document.get("message") or {}).get("conversation_id") or conversation_id

        message = transcript.get(result.display_id)
        print(f"Assistant: {message.text if message else ''}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chat with a streaming agent backend")
    parser.add_argument("--backend", choices=["dip", "coze"], default="dip")
    parser.add_argument("--base-url", default=None)
    parser.add_argument("--agent-key", default=None)
    parser.add_argument("--agent-id", default="")
    parser.add_argument("--bot-id", default=None)
    parser.add_argument("--trace", action="store_true", help="Print OpenTelemetry spans to the console")
    args = parser.parse_args()
    asyncio.run(main(args))
