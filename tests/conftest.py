import json

import pytest

from streamdoc.assembler import Assembler
from streamdoc.dispatcher import WhitelistDispatcher
from streamdoc.extractors import default_registry
from streamdoc.frames import Frame
from streamdoc.strategies import DIPStrategy
from streamdoc.transcript import Transcript


# ---------------------------------------------------------------------------
# Recording sink
# ---------------------------------------------------------------------------

class RecordingSink:
    """Render sink that records every callback. No rendering."""

    def __init__(self):
        self.calls: list[tuple] = []

    def on_text_delta(self, display_id, full_text):
        self.calls.append(("text", display_id, full_text))

    def on_tool_block(self, display_id, tool_name, block):
        self.calls.append(("tool", display_id, tool_name, block))

    def on_identity_renamed(self, old_id, new_id):
        self.calls.append(("rename", old_id, new_id))

    def of_kind(self, kind: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == kind]


# ---------------------------------------------------------------------------
# Frame / payload builders
# ---------------------------------------------------------------------------

PROGRESS = ["message", "content", "progress"]


def make_frame(key, action, content=None, seq_id=None, event_type="") -> Frame:
    """Fake DIP frame carrying a single patch instruction."""
    payload = {"key": list(key), "action": action, "content": content}
    if seq_id is not None:
        payload["seq_id"] = seq_id
    return Frame(event_type=event_type, data=json.dumps(payload))


def llm_slot(answer: str) -> dict:
    return {"stage": "llm", "answer": answer}


def skill_slot(name: str, answer=None, args=None, **extra) -> dict:
    slot = {
        "stage": "skill",
        "skill_info": {"name": name, "args": args or []},
        "answer": answer,
    }
    slot.update(extra)
    return slot


def web_search_answer(query: str = "weather", titles=("Result A",)) -> dict:
    """Answer shape produced by ``zhipu_search_tool``."""
    return {
        "choices": [{
            "message": {
                "tool_calls": [
                    {"search_intent": [{"query": query}]},
                    {"search_result": [
                        {"title": t, "link": f"https://example.com/{i}", "content": t.lower()}
                        for i, t in enumerate(titles)
                    ]},
                ],
            },
        }],
    }


def sse_bytes(*payloads, done: bool = True) -> bytes:
    """Encode raw payload dicts as an SSE body."""
    body = "".join(f"data: {json.dumps(p, ensure_ascii=False)}\n\n" for p in payloads)
    if done:
        body += "data: [DONE]\n\n"
    return body.encode("utf-8")


async def iter_chunks(data: bytes, size: int):
    for start in range(0, len(data), size):
        yield data[start:start + size]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def dispatcher(sink):
    return WhitelistDispatcher(sink, default_registry())


@pytest.fixture
def assembler(dispatcher):
    return Assembler(DIPStrategy(agent_key="agent-1"), dispatcher)


@pytest.fixture
def transcript():
    return Transcript()
