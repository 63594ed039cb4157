"""
AI Respondent for generating panel variants, concept reactions and theme
summaries.

This module is the only place that talks to the generative provider. Each
call is a single chat completion; retries are left to the OpenAI client.
"""

import json
import logging
import os
from typing import Dict, List, Any, Optional

from dotenv import load_dotenv
from openai import AsyncOpenAI

from voicepanel.core.config import settings
from voicepanel.core.errors import GenerationUnavailableError
from voicepanel.synthetic.reaction_parser import ConceptReaction, SCORES_SEPARATOR, REACTION_TAGS, parse_reaction

load_dotenv()

logger = logging.getLogger(__name__)

REACTION_SYSTEM_PROMPT = f"""You are embodying a specific persona to provide authentic feedback on a creative
concept. Respond as this person would - with their vocabulary, concerns,
enthusiasm level, and cultural frame of reference.

Your response should:
1. Give an immediate gut reaction (1-2 sentences)
2. Explain what you understood the concept to be
3. Share what resonates or doesn't resonate with you
4. Indicate whether you'd engage with or share this

Stay in character throughout. Be specific and authentic to this persona's worldview.

After your response, provide JSON with these fields:
- sentiment_score: 1-10 (how positive/negative is your overall reaction)
- engagement_likelihood: 1-10 (how likely would you engage with this)
- share_likelihood: 1-10 (would you share this with friends)
- comprehension_score: 1-10 (how well did you understand what this is about)
- reaction_tags: array of 2-4 tags from [{", ".join(REACTION_TAGS)}]

Format your final response as:
[Your in-character response here]

{SCORES_SEPARATOR}
{{"sentiment_score": X, "engagement_likelihood": X, "share_likelihood": X, "comprehension_score": X, "reaction_tags": ["tag1", "tag2"]}}"""

THEMES_SYSTEM_PROMPT = """You are analyzing audience feedback to extract patterns and themes. Given a set
of persona responses to a creative concept, identify:

1. Key positive themes (what's working)
2. Key concerns (what's not working)
3. Unexpected reactions (surprises worth noting)
4. 3-5 representative quotes that capture the range of reactions

Return as JSON:
{
  "positive_themes": [{"theme": "string", "frequency": number}],
  "concerns": [{"theme": "string", "frequency": number}],
  "unexpected": [{"theme": "string", "frequency": number}],
  "key_quotes": ["quote1", "quote2", ...]
}

IMPORTANT: Return ONLY the JSON, no markdown formatting."""


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _join(values: Any) -> str:
    if not values:
        return "Not specified"
    if isinstance(values, list):
        return ", ".join(str(v) for v in values)
    return str(values)


class AIRespondent:
    """
    AI-powered respondent that plays persona variants against a concept.

    Holds one AsyncOpenAI client for the lifetime of the application.
    """

    def __init__(self, openai_api_key: Optional[str] = None, model: Optional[str] = None, client: Any = None):
        """
        Initialize the AI Respondent.

        Args:
            openai_api_key: OpenAI API key (or OPENAI_API_KEY setting / env var)
            model: OpenAI model to use (default: OPENAI_MODEL setting)
                   Image attachments need a vision-capable model such as gpt-4o
            client: Pre-built client, mainly for tests
        """
        self.model = model or settings.OPENAI_MODEL
        self.api_key_set = False
        self.client = client

        if self.client is None:
            api_key = openai_api_key or settings.OPENAI_API_KEY or os.getenv("OPENAI_API_KEY")
            if api_key:
                self.client = AsyncOpenAI(api_key=api_key)
                self.api_key_set = True
            else:
                logger.warning("No OpenAI API key configured. Generation calls will be rejected.")
        else:
            self.api_key_set = True

    @property
    def available(self) -> bool:
        return self.client is not None

    def _require_client(self):
        if not self.client:
            raise GenerationUnavailableError("OpenAI client is not configured (set OPENAI_API_KEY)")
        return self.client

    async def _complete(self, messages: List[Dict[str, Any]], temperature: float, max_tokens: int,
                        json_mode: bool = False) -> str:
        client = self._require_client()
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await client.chat.completions.create(**kwargs)
        return response.choices[0].message.content or ""

    # ---------- Variant generation ----------

    def build_variant_messages(self, persona: Any, count: int, config: Any) -> List[Dict[str, Any]]:
        age_spread = _get(config, "age_spread", 5)
        system_prompt = f"""You are generating variant personas for audience testing. Given a base persona,
create {count} variants with controlled diversity. Each variant should feel like a
real individual who shares core traits with the base but differs in specific ways.

Return a JSON object with a "variants" array, one entry per variant:
{{
  "variant_name": "First name that fits demographic",
  "age_actual": number (within ±{age_spread} of base),
  "location_variant": "Specific city/area appropriate to persona",
  "attitude_score": number 1-10 (1=skeptic, 10=enthusiast),
  "primary_platform": "Their main social platform",
  "engagement_level": "heavy|moderate|light|lapsed",
  "distinguishing_trait": "One specific thing that makes them unique",
  "voice_modifier": "How their voice differs from base (e.g., 'more sarcastic', 'uses more emoji')"
}}

IMPORTANT: Return ONLY JSON, no markdown formatting or additional text."""

        persona_json = {
            "name": _get(persona, "name"),
            "age_base": _get(persona, "age_base"),
            "location": _get(persona, "location"),
            "occupation": _get(persona, "occupation"),
            "household": _get(persona, "household"),
            "psychographics": _get(persona, "psychographics"),
            "media_habits": _get(persona, "media_habits"),
            "brand_context": _get(persona, "brand_context"),
            "cultural_context": _get(persona, "cultural_context"),
        }
        user_prompt = f"""Base Persona: {json.dumps(persona_json, indent=2, default=str)}

Generate {count} variants with this distribution:
- Attitude: {_get(config, "attitude_distribution", "normal")} (normal/skew_positive/skew_negative)
- Age spread: ±{age_spread} years
- Platforms to include: {_join(_get(config, "platforms_to_include", []))}

Ensure diversity across all dimensions. Make each variant feel like a real person."""

        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]

    async def generate_variants_raw(self, persona: Any, count: int, config: Any) -> str:
        """Ask for `count` variants of `persona`; returns the raw reply text."""
        logger.info(f"Generating {count} variants for persona {_get(persona, 'name')}...")
        content = await self._complete(
            self.build_variant_messages(persona, count, config),
            temperature=0.9,
            max_tokens=4000,
            json_mode=True,
        )
        logger.info(f"Variant reply received, length: {len(content)}")
        return content

    # ---------- Concept reactions ----------

    def build_reaction_messages(
        self,
        variant: Any,
        persona: Any,
        concept_text: str,
        attachments: Optional[List[Dict[str, Any]]] = None,
        focus_modifier: str = "",
    ) -> List[Dict[str, Any]]:
        """
        Build the chat messages for one variant's reaction.

        PDF attachments are appended as text blocks; image attachments become
        image_url content parts for the vision path.
        """
        psychographics = _get(persona, "psychographics") or {}
        cultural = _get(persona, "cultural_context") or {}
        voice_modifier = _get(variant, "voice_modifier") or ""

        concept_parts = [concept_text or ""]
        image_parts = []
        for attachment in attachments or []:
            kind = _get(attachment, "kind")
            name = _get(attachment, "name", "attachment")
            if kind == "pdf" and _get(attachment, "extracted_text"):
                concept_parts.append(f"\n[Document: {name}]\n{_get(attachment, 'extracted_text')}")
            elif kind == "image" and _get(attachment, "data_url"):
                image_parts.append({
                    "type": "image_url",
                    "image_url": {"url": _get(attachment, "data_url")},
                })
                concept_parts.append(f"\n[Image attached: {name}]")

        image_instruction = ""
        if image_parts:
            image_instruction = """
IMPORTANT: This concept includes IMAGES. Look at them carefully - visual design,
tone, and how they would land in your feed - and react to them as part of the concept.
"""

        focus_block = f"\nEVALUATION FOCUS:\n{focus_modifier}\n" if focus_modifier else ""
        voice_line = f"Voice Modifier: {voice_modifier}" if voice_modifier else ""
        concept_block = "".join(concept_parts)

        user_prompt = f"""PERSONA:
Name: {_get(variant, "variant_name")}
Age: {_get(variant, "age_actual")}
Location: {_get(variant, "location_variant")}
Primary Platform: {_get(variant, "primary_platform")}
Engagement Level: {_get(variant, "engagement_level")}
Attitude Score: {_get(variant, "attitude_score")}/10 (1=skeptic, 10=enthusiast)
Distinguishing Trait: {_get(variant, "distinguishing_trait") or ""}

Base Profile:
- Occupation: {_get(persona, "occupation")}
- Values: {_join(psychographics.get("values"))}
- Motivations: {_join(psychographics.get("motivations"))}
- Pain Points: {_join(psychographics.get("pain_points"))}
- Decision Style: {psychographics.get("decision_style") or "Not specified"}
- Humor Style: {cultural.get("humor_style") or "Not specified"}
- Language Markers: {_join(cultural.get("language_markers"))}

VOICE STYLE:
{_get(persona, "voice_sample") or ""}
{voice_line}

CONCEPT TO EVALUATE:
{concept_block}
{image_instruction}{focus_block}
Respond in character, then provide your scores and tags."""

        if image_parts:
            user_content: Any = [{"type": "text", "text": user_prompt}] + image_parts
        else:
            user_content = user_prompt

        return [
            {"role": "system", "content": REACTION_SYSTEM_PROMPT},
            {"role": "user", "content": user_content},
        ]

    async def react_to_concept(
        self,
        variant: Any,
        persona: Any,
        concept_text: str,
        attachments: Optional[List[Dict[str, Any]]] = None,
        focus_modifier: str = "",
    ) -> ConceptReaction:
        """
        One variant's reaction. Provider errors propagate; a malformed score
        block is absorbed by parse_reaction.
        """
        content = await self._complete(
            self.build_reaction_messages(variant, persona, concept_text, attachments, focus_modifier),
            temperature=0.85,
            max_tokens=800,
        )
        return parse_reaction(content)

    # ---------- Theme summaries ----------

    async def summarize_themes(self, concept_text: str, sampled: List[Dict[str, Any]]) -> Dict[str, Any]:
        """
        Extract ranked themes and quotes from sampled responses.

        Returns the parsed JSON object; raises on provider failure or a reply
        that is not a JSON object.
        """
        user_prompt = f"""CONCEPT TESTED:
{concept_text}

RESPONSES ({len(sampled)} total):
{json.dumps(sampled, indent=2)}

Analyze these responses and extract actionable insights."""

        content = await self._complete(
            [
                {"role": "system", "content": THEMES_SYSTEM_PROMPT},
                {"role": "user", "content": user_prompt},
            ],
            temperature=0.5,
            max_tokens=2000,
            json_mode=True,
        )
        parsed = json.loads(content or "{}")
        if not isinstance(parsed, dict):
            raise ValueError("Theme analysis reply is not a JSON object")
        return parsed
