"""
Re-framing of OpenAI SSE streams into Ollama NDJSON streams.

OpenAI streams `data: {...}` frames terminated by `data: [DONE]`. Ollama
clients expect one JSON object per line, the last one with `done: true`
and the timing counters.
"""

import json
import logging
import math
from enum import Enum
from typing import Any, AsyncIterable, AsyncIterator, Dict, List, Optional

from .models import Variant
from .translator import build_chunk, build_final_chunk

logger = logging.getLogger(__name__)

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"

# Upstream streams carry no usage; prompt tokens are estimated from output
PROMPT_EVAL_RATIO = 0.3


class ReframerState(str, Enum):
    """Stream re-framer state."""
    STREAMING = "streaming"
    TERMINATED = "terminated"


def _delta_content(payload: str) -> Optional[str]:
    """Return the content of a delta frame, or None when there is none."""
    try:
        frame = json.loads(payload)
    except json.JSONDecodeError:
        logger.debug(f"Skipping unparseable frame: {payload[:100]}")
        return None

    choices = frame.get("choices") if isinstance(frame, dict) else None
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None

    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return None

    content = delta.get("content")
    return content if isinstance(content, str) and content else None


def to_ndjson(chunk: Dict[str, Any]) -> str:
    return json.dumps(chunk) + "\n"


class StreamReframer:
    """
    State machine converting upstream SSE text into Ollama chunks.

    STREAMING -> TERMINATED, entered exactly once, either on the `[DONE]`
    sentinel or when `finish()` is called. Exactly one terminal chunk is
    produced per stream and nothing is produced after it.

    Frames that fail to parse are skipped; they never end the stream.
    """

    def __init__(self, model: str, variant: Variant):
        self.model = model
        self.variant = variant
        self.state = ReframerState.STREAMING
        self.token_count = 0
        self._partial = ""

    @property
    def terminated(self) -> bool:
        return self.state == ReframerState.TERMINATED

    def feed(self, raw: str) -> List[Dict[str, Any]]:
        """
        Consume one raw chunk of upstream text.

        A trailing line without its newline is held back until the next
        chunk (or `finish()`), so frames split across reads are rebuilt.
        """
        if self.terminated:
            return []

        lines = (self._partial + raw).split("\n")
        self._partial = lines.pop()
        return self._consume(lines)

    def finish(self) -> List[Dict[str, Any]]:
        """Flush buffered input at end of upstream; always terminates."""
        if self.terminated:
            return []

        pending, self._partial = self._partial, ""
        chunks = self._consume([pending])
        if not self.terminated:
            logger.warning(f"Upstream stream for {self.model} ended without {DONE_SENTINEL}")
            chunks.append(self._terminate())
        return chunks

    def _consume(self, lines: List[str]) -> List[Dict[str, Any]]:
        chunks = []

        for line in lines:
            line = line.rstrip("\r")
            if not line.strip() or not line.startswith(DATA_PREFIX):
                continue

            payload = line[len(DATA_PREFIX):].strip()

            if payload == DONE_SENTINEL:
                chunks.append(self._terminate())
                break

            content = _delta_content(payload)
            if content is None:
                continue

            self.token_count += 1
            chunks.append(build_chunk(self.model, self.variant, content))

        return chunks

    def _terminate(self) -> Dict[str, Any]:
        self.state = ReframerState.TERMINATED
        self._partial = ""
        logger.debug(f"Stream for {self.model} terminated after {self.token_count} deltas")
        return build_final_chunk(
            self.model,
            self.variant,
            content="",
            prompt_eval_count=math.floor(self.token_count * PROMPT_EVAL_RATIO),
            eval_count=self.token_count,
        )

    async def reframe(self, chunks: AsyncIterable[str]) -> AsyncIterator[str]:
        """
        Drive the machine from an async source of text chunks.

        Yields NDJSON lines and stops reading the source once terminated.
        """
        async for raw in chunks:
            for chunk in self.feed(raw):
                yield to_ndjson(chunk)
            if self.terminated:
                return

        for chunk in self.finish():
            yield to_ndjson(chunk)
