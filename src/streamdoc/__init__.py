from streamdoc.assembler import Assembler, TurnResult, TurnUpdate
from streamdoc.blocks import BlockType, RenderBlock
from streamdoc.client import ClientConfig, StreamClient, StreamTransportError
from streamdoc.dispatcher import RenderSink, Whitelist, WhitelistDispatcher
from streamdoc.events import Action, PatchEvent, parse_event
from streamdoc.extractors import ExtractorRegistry, default_registry
from streamdoc.frames import Frame, FrameDecoder
from streamdoc.identity import new_display_id, reconcile
from streamdoc.instrumentation import instrument, uninstrument
from streamdoc.merge import get_path, merge, normalize_path
from streamdoc.strategies import BackendStrategy, CozeStrategy, DIPStrategy
from streamdoc.transcript import ChatMessage, Transcript

__all__ = [
    "Action",
    "Assembler",
    "BackendStrategy",
    "BlockType",
    "ChatMessage",
    "ClientConfig",
    "CozeStrategy",
    "DIPStrategy",
    "ExtractorRegistry",
    "Frame",
    "FrameDecoder",
    "PatchEvent",
    "RenderBlock",
    "RenderSink",
    "StreamClient",
    "StreamTransportError",
    "Transcript",
    "TurnResult",
    "TurnUpdate",
    "Whitelist",
    "WhitelistDispatcher",
    "default_registry",
    "get_path",
    "instrument",
    "merge",
    "new_display_id",
    "normalize_path",
    "parse_event",
    "reconcile",
    "uninstrument",
]
