"""
Streaming Delivery Adapter

Runs the Answer Composer on a background thread and hands back a generator of
Server-Sent Events right away:

    event: token     data: {"token": "..."}                 zero or more
    event: metadata  data: {"sources": [...], "confidence": x}  once, before completion
    event: complete  data: <AssistantResponse>               terminal
    event: error     data: {"error": "...", "response": ...}  terminal

Exactly one terminal event is emitted per stream, whatever the composer does.
Closing the generator (client disconnect) cancels the composer between stages.
"""

import json
import queue
import logging
import threading
from typing import Any, Iterator, Optional

from .domain_patterns import ERROR_MESSAGE

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = frozenset({"complete", "error"})


def format_sse(event: str, data: Any) -> str:
    """Format a Server-Sent Event."""
    return f"event: {event}\ndata: {json.dumps(data, ensure_ascii=False)}\n\n"


def parse_sse_event(text: str) -> tuple[str, Any]:
    """
    Parse one Server-Sent Event back into (event, data).

    Multiple data lines are joined with newlines before JSON decoding.
    Events without a name default to "message".
    """
    event = "message"
    data_lines = []
    for line in text.strip("\n").splitlines():
        if line.startswith("event:"):
            event = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:"):].lstrip())

    raw = "\n".join(data_lines)
    if not raw:
        return event, None
    try:
        return event, json.loads(raw)
    except json.JSONDecodeError:
        return event, raw


def parse_sse_stream(body: str) -> list[tuple[str, Any]]:
    """Split a complete SSE body into parsed events."""
    return [parse_sse_event(block) for block in body.split("\n\n") if block.strip()]


class StreamingAdapter:
    """
    Delivers composer output incrementally.

    Usage:
        adapter = StreamingAdapter(composer)
        for sse in adapter.stream("What is Article 8 of the Civil Code?"):
            send(sse)
    """

    def __init__(self, composer):
        self.composer = composer

    def stream(self, question: str, recent_turns=None) -> Iterator[str]:
        """Start answering in the background and return the event generator."""
        events: queue.Queue = queue.Queue()
        cancel_event = threading.Event()

        worker = threading.Thread(
            target=self._run,
            args=(question, recent_turns, events, cancel_event),
            name="answer-stream",
            daemon=True,
        )
        worker.start()
        return self._drain(events, cancel_event)

    def _run(self, question, recent_turns, events: queue.Queue, cancel_event: threading.Event) -> None:
        metadata_sent = threading.Event()
        terminal: Optional[tuple[str, Any]] = None

        def on_token(token: str) -> None:
            events.put(("token", {"token": token}))

        def on_metadata(metadata: dict) -> None:
            metadata_sent.set()
            events.put(("metadata", metadata))

        try:
            response = self.composer.answer(
                question,
                recent_turns,
                cancel_event=cancel_event,
                on_token=on_token,
                on_metadata=on_metadata,
            )
            payload = response.model_dump(mode="json")
            if response.status == "error":
                terminal = ("error", {"error": response.answer_text, "response": payload})
            else:
                if not metadata_sent.is_set():
                    events.put(("metadata", {
                        "sources": payload["sources"],
                        "confidence": payload["metrics"]["confidence"],
                    }))
                terminal = ("complete", payload)
        except Exception as e:
            logger.error(f"Streaming answer failed: {type(e).__name__}: {e}", exc_info=True)
            terminal = ("error", {"error": ERROR_MESSAGE})
        finally:
            events.put(terminal or ("error", {"error": ERROR_MESSAGE}))

    def _drain(self, events: queue.Queue, cancel_event: threading.Event) -> Iterator[str]:
        try:
            while True:
                event, data = events.get()
                yield format_sse(event, data)
                if event in TERMINAL_EVENTS:
                    return
        finally:
            # No-op once the composer has finished
            cancel_event.set()
