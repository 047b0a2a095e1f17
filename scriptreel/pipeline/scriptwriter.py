"""
Script writer — drafts short video scripts with Claude via the Anthropic
Messages REST API, and parses whatever comes back into ScriptVariants.
"""

import os
import re
import json
import logging
from typing import Optional

import httpx

from .errors import ValidationError
from .models import ScriptVariant

logger = logging.getLogger(__name__)

ANTHROPIC_API_KEY = os.environ.get("ANTHROPIC_API_KEY", "")
ANTHROPIC_MODEL = os.environ.get("ANTHROPIC_MODEL", "claude-sonnet-4-5-20250929")
API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
MAX_TOKENS = 4000
MAX_VARIATIONS = 5


SYSTEM_PROMPT = """You are a skilled content creator who writes clear, engaging video scripts. Your task is to generate distinct, well-written video script variations based on the user's topic.

Each script should be engaging and provide real value to viewers. The total script read time must be between 40-60 seconds.

**STYLE & TONE:**
1. **Tone:** Friendly, clear, and helpful. Conversational, without technical jargon.
2. **Language:** Everyday language. No excessive capitalization or aggressive marketing terms.
3. **Focus:** Every script should save the viewer time, save them money, or teach them something useful.

**SCRIPT STRUCTURE:**
Each variation contains four clearly labeled components:
1. **HOOK (first 3-5 seconds):** An interesting opening — a helpful tip, a surprising fact, or a clear benefit.
2. **BODY:** The longest section. A simple, numbered, step-by-step guide in short sentences.
3. **CLOSING STATEMENT:** One sentence summarizing the main takeaway.
4. **CTA:** A friendly call to action — ask for comments or suggest saving/sharing the video.

**OUTPUT FORMAT:**
Return strict JSON:
{
  "scripts": [
    { "id": 1, "content": "..." },
    { "id": 2, "content": "..." }
  ]
}"""


def _user_prompt(topic: str, num_variations: int) -> str:
    return (
        f'Generate {num_variations} distinct video script variations for the following topic: "{topic}"\n\n'
        "Make sure each script is unique in approach, hook, and structure while keeping the "
        "language clear and accessible to a general audience."
    )


# ── Response parsing ─────────────────────────────────────────────────────────

def _first_scripts_object(text: str) -> Optional[dict]:
    """First well-formed JSON object in text that carries a "scripts" list."""
    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", text):
        try:
            obj, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict) and isinstance(obj.get("scripts"), list):
            return obj
    return None


def parse_script_variants(raw: str, limit: int = 3) -> list[ScriptVariant]:
    """
    Tolerates prose and ```json fences around the payload. Without any
    JSON, falls back to one script per blank-line-separated block.
    Missing ids are filled in sequentially.
    """
    text = (raw or "").strip()
    obj = _first_scripts_object(text)

    if obj is not None:
        items = obj["scripts"]
    else:
        logger.warning(f"No JSON in script response, splitting on blank lines: {text[:200]}")
        items = [block.strip() for block in re.split(r"\n\s*\n+", text) if block.strip()]

    variants: list[ScriptVariant] = []
    for index, item in enumerate(items[:limit]):
        if isinstance(item, dict):
            content = str(item.get("content") or "").strip()
            script_id = item.get("id")
        else:
            content = str(item).strip()
            script_id = None
        if not content:
            continue
        if not isinstance(script_id, int) or script_id < 1:
            script_id = index + 1
        variants.append(ScriptVariant(id=script_id, content=content))

    if not variants:
        raise ValueError("Script generator returned no usable scripts")
    return variants


# ── API ──────────────────────────────────────────────────────────────────────

class ScriptWriter:
    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = ANTHROPIC_MODEL,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = ANTHROPIC_API_KEY if api_key is None else api_key
        self.model = model
        self._client = client

    async def _post(self, body: dict) -> dict:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        if self._client is not None:
            resp = await self._client.post(API_URL, json=body, headers=headers)
        else:
            async with httpx.AsyncClient(timeout=120) as client:
                resp = await client.post(API_URL, json=body, headers=headers)

        if resp.status_code != 200:
            raise RuntimeError(f"Anthropic API error {resp.status_code}: {resp.text[:500]}")
        return resp.json()

    async def generate_scripts(self, topic: str, num_variations: int = 3) -> list[ScriptVariant]:
        """
        Raises:
            ValidationError: empty topic.
            RuntimeError: missing key or API error.
        """
        topic = (topic or "").strip()
        if not topic:
            raise ValidationError("Topic is required")
        if not self.api_key:
            raise RuntimeError("ANTHROPIC_API_KEY not set")

        num_variations = max(1, min(MAX_VARIATIONS, int(num_variations)))
        logger.info(f"Generating {num_variations} scripts for topic: {topic}")

        result = await self._post({
            "model": self.model,
            "max_tokens": MAX_TOKENS,
            "system": SYSTEM_PROMPT,
            "messages": [{"role": "user", "content": _user_prompt(topic, num_variations)}],
        })

        blocks = [b for b in result.get("content", []) if b.get("type") == "text"]
        if not blocks:
            raise RuntimeError("Unexpected response type from Anthropic API")

        usage = result.get("usage") or {}
        logger.info(
            f"Anthropic usage: input={usage.get('input_tokens')} output={usage.get('output_tokens')}"
        )

        return parse_script_variants(blocks[0].get("text", ""), limit=num_variations)
