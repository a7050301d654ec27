"""Gemini-backed generator for scenario setup and reveal payloads.

Each call is a single attempt with structured JSON output. Anything that
goes wrong (transport, timeout, empty text, bad JSON, schema mismatch) is
raised as GenerationError.
"""
import asyncio
import json
import logging
from typing import Protocol

from google import genai
from google.genai import types as genai_types
from pydantic import BaseModel, ValidationError

from app.core.config import Settings, get_settings
from app.core.errors import GenerationError
from app.schemas.simulation import Choice, RevealResult, ScenarioResult, SimulationRecord

logger = logging.getLogger(__name__)

DEFAULT_PROMPT = "Start a new high-stakes professional simulation."

SYSTEM_PROMPT = """
You are the MASTER PSYCHOLOGY INTERACTIVE ENGINE (V5.0).
Your goal is to provide high-stakes behavioral simulations that are deeply immersive and psychologically complex.

UNIVERSAL LANGUAGE PROTOCOL:
- Adapt to the user's input language.
- If input is Romanized Bengali (Banglish), reply in formal Bengali script.
- Regardless of language, the STRUCTURAL QUALITY must be identical.

PHASE 1 - THE SETUP RULES:
- Clearly define the user's role.
- Atmospheric Setting: 4-6 very short, distinct paragraphs.
- Micro-Expression clues: Sharp, clinical analysis.
- 3 Interactive Choices with type EMOTIONAL, AVOIDANT and STRATEGIC.

PHASE 2 - THE REVEAL RULES:
- Detailed Narrative Outcome: the immediate consequence, 2-3 short paragraphs.
- Masterclass Analysis with **SECTION TITLES IN ALL CAPS**, every point a dash bullet
  followed by a blank line, key concepts in **bold**, no long paragraphs.
- Simulation Log: language, conflictType (Social, Professional, Power Dynamics,
  Leadership, Negotiation), intensityLevel 1-5, coreSkill (Emotional Control,
  Assertiveness, Social Intelligence, Boundary Setting, Persuasion, Status Management)
  and a one-line strategicEssence.

EYE-COMFORT WRITING STYLE:
- Maximum 2 sentences per paragraph.
- Always include a blank line between every point or paragraph.
"""

REVEAL_PROMPT = """
Based on this simulation: "{title}"
The user chose: "{label}: {text}"

Provide the Outcome, Masterclass Analysis, and Simulation Log.
Use bold headers and separate every point with space.
"""


class SimulationGenerator(Protocol):
    async def request_scenario(self, prompt: str) -> ScenarioResult: ...

    async def request_reveal(self, record: SimulationRecord, choice: Choice) -> RevealResult: ...


def parse_payload(raw_text: str | None, schema: type[BaseModel]) -> BaseModel:
    """Parse generator JSON text into schema, raising GenerationError."""
    if not raw_text or not raw_text.strip():
        raise GenerationError("Empty response received from engine.")
    try:
        data = json.loads(raw_text)
        return schema.model_validate(data)
    except json.JSONDecodeError as e:
        raise GenerationError(f"Invalid JSON received from engine: {e}") from e
    except ValidationError as e:
        raise GenerationError(f"Unexpected {schema.__name__} format: {e}") from e


class GeminiGenerator:
    """SimulationGenerator backed by the google-genai async client."""

    def __init__(self, settings: Settings | None = None, client: genai.Client | None = None):
        settings = settings or get_settings()
        self.api_key = settings.gemini_api_key
        self.model_name = settings.gemini_model
        self.timeout = settings.gemini_timeout_seconds
        self._client = client

    @property
    def client(self) -> genai.Client:
        # built on first use so the app starts without a key configured
        if self._client is None:
            self._client = genai.Client(api_key=self.api_key or None)
        return self._client

    async def request_scenario(self, prompt: str) -> ScenarioResult:
        return await self._generate(prompt or DEFAULT_PROMPT, ScenarioResult, "scenario")

    async def request_reveal(self, record: SimulationRecord, choice: Choice) -> RevealResult:
        prompt = REVEAL_PROMPT.format(title=record.title, label=choice.label, text=choice.text)
        return await self._generate(prompt, RevealResult, "reveal")

    async def _generate(self, prompt: str, schema: type[BaseModel], call_type: str):
        config = genai_types.GenerateContentConfig(
            system_instruction=SYSTEM_PROMPT,
            response_mime_type="application/json",
            response_schema=schema,
        )
        try:
            client = self.client
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=self.model_name,
                    contents=prompt,
                    config=config,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning("Gemini %s call timed out after %.0fs", call_type, self.timeout)
            raise GenerationError("Gemini call timed out") from e
        except Exception as e:
            logger.warning("Gemini %s call failed: %s", call_type, e)
            raise GenerationError(f"Gemini call failed: {e}") from e

        logger.info("Gemini call [%s] model=%s", call_type, self.model_name)
        return parse_payload(response.text, schema)
