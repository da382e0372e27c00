"""Replay a captured SSE turn through the assembler.

    python src/scripts/replay_stream.py capture.sse --backend dip --chunk-size 64

Prints every render callback as it fires, then the final blocks as JSON.
"""

import argparse
import asyncio
import json
import logging
import pathlib

from streamdoc.assembler import Assembler
from streamdoc.dispatcher import WhitelistDispatcher
from streamdoc.extractors import default_registry
from streamdoc.history import blocks_from_document
from streamdoc.identity import new_display_id
from streamdoc.strategies import CozeStrategy, DIPStrategy
from streamdoc.transcript import Transcript

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s:%(name)s:%(levelname)s:%(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
)
logger = logging.getLogger(__name__)


class PrintingTranscript(Transcript):
    def on_text_delta(self, display_id: str, full_text: str) -> None:
        super().on_text_delta(display_id, full_text)
        print(f"[{display_id}] text: {full_text[-60:]!r}")

    def on_tool_block(self, display_id, tool_name, block) -> None:
        super().on_tool_block(display_id, tool_name, block)
        print(f"[{display_id}] tool {tool_name} (slot {block.slot})")

    def on_identity_renamed(self, old_id: str, new_id: str) -> None:
        super().on_identity_renamed(old_id, new_id)
        print(f"renamed {old_id} -> {new_id}")


async def read_chunks(path: pathlib.Path, chunk_size: int):
    data = path.read_bytes()
    for start in range(0, len(data), chunk_size):
        yield data[start:start + chunk_size]
        await asyncio.sleep(0)


async def replay(path: pathlib.Path, backend: str, chunk_size: int):
    strategy = CozeStrategy(bot_id="replay") if backend == "coze" else DIPStrategy(agent_key="replay")
    transcript = PrintingTranscript()
    extractors = default_registry()
    assembler = Assembler(strategy, WhitelistDispatcher(transcript, extractors))

    display_id = new_display_id()
    transcript.start_turn(display_id)
    result = await assembler.consume(read_chunks(path, chunk_size), display_id)
    transcript.finish_turn()

    blocks = blocks_from_document(result.document, extractors)
    print(json.dumps(
        {
            "display_id": result.display_id,
            "completed": result.completed,
            "frames": result.frames,
            "blocks": [b.model_dump() for b in blocks],
        },
        indent=2,
        ensure_ascii=False,
        default=str,
    ))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("capture", type=pathlib.Path)
    parser.add_argument("--backend", choices=["dip", "coze"], default="dip")
    parser.add_argument("--chunk-size", type=int, default=4096)
    args = parser.parse_args()
    asyncio.run(replay(args.capture, args.backend, args.chunk_size))
