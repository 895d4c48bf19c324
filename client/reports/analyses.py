"""
Analysis entry points.

One method per report kind. Each builds its prompt parts (text plus
optional base64 JPEG images) and delegates to ReportGenerator; the result
is the decoded JSON report, unvalidated.

History items passed to comparison/synergy are the dicts stored by the
history backend: {"type", "date", "report", <image fields>...}.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Sequence

from constants import (
    COMPARISON_IMAGE_MAX_CHARS,
    COMPARISON_MAX_IMAGES,
    COMPARISON_SUMMARY_MAX_CHARS,
    DAILY_OUTLOOK_HISTORY_MAX_CHARS,
    SYNERGY_REPORT_MAX_CHARS,
)
from observability.logger import log_event, now_ms
from reports import prompts
from reports.errors import ReportGenerationError
from reports.generator import ImagePart, PromptPart, ReportGenerator


# Image fields of a history item, in the order they are looked up
_HISTORY_IMAGE_FIELDS = (
    "tongueImageBase64",
    "faceImageBase64",
    "rightNailImageBase64",
    "irisImageBase64",
    "rightPalmBase64",
)

# Report fields that summarise a report, in priority order
_SUMMARY_FIELDS = ("summary", "cosmicIdentity", "diagnosis")


@dataclass(frozen=True)
class RelationshipContext:
    relationship_status: str
    gender_a: str
    gender_b: str


@dataclass(frozen=True)
class PalmUserContext:
    age: str
    gender: str
    dominant_hand: str  # "left" | "right"


@dataclass(frozen=True)
class EncyclopediaEntry:
    text: str
    sources: tuple[dict[str, Any], ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------
# History helpers
# ---------------------------------------------------------------------

def _date_key(item: Mapping[str, Any]) -> float:
    raw = str(item.get("date", ""))
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return 0.0


def sort_chronologically(items: Sequence[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """Oldest first; unparseable dates sort first. Stable."""
    return sorted(items, key=_date_key)


def report_summary(item: Mapping[str, Any]) -> str:
    report = item.get("report")
    if not isinstance(report, Mapping):
        return ""
    for name in _SUMMARY_FIELDS:
        value = report.get(name)
        if value:
            return str(value)
    return ""


def history_image(item: Mapping[str, Any]) -> str:
    """The item's primary image (first image field present), or ""."""
    for name in _HISTORY_IMAGE_FIELDS:
        if name in item:
            return str(item[name] or "")
    return ""


def _compact_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


# ---------------------------------------------------------------------
# ReportService
# ---------------------------------------------------------------------

class ReportService:
    """Hakim analyses over one ReportGenerator."""

    def __init__(self, generator: ReportGenerator) -> None:
        self._generator = generator

    # ------------------------------------------------------------------
    # Palmistry
    # ------------------------------------------------------------------

    async def analyze_palm(
        self,
        right_palm: str,
        left_palm: str,
        palmistry_type: str,
        user: PalmUserContext,
        lang: str,
    ) -> dict[str, Any]:
        prompt = prompts.build_report_prompt(
            header=(
                f"**DIAGNOSIS METHOD:** {palmistry_type} Palmistry.",
                f"**USER:** Age: {user.age}, Gender: {user.gender}, "
                f"Dominant: {user.dominant_hand.upper()}",
            ),
            task="Diagnose Right vs Left hand (Innate vs Acquired) and Prescribe.",
            lang=lang,
            fields=prompts.PALM_FIELDS,
        )
        parts: list[PromptPart] = [
            prompt,
            "Image 1: Right Palm (Active):", ImagePart(right_palm),
            "Image 2: Left Palm (Innate):", ImagePart(left_palm),
        ]
        return await self._generator.generate_and_parse(parts, kind="palm")

    async def analyze_compatibility(
        self,
        person_a_right: str,
        person_a_left: str,
        person_b_right: str,
        person_b_left: str,
        context: RelationshipContext,
        lang: str,
    ) -> dict[str, Any]:
        prompt = prompts.build_report_prompt(
            header=(
                "**DIAGNOSIS:** Palmistry Synastry.",
                f"**CONTEXT:** Status: {context.relationship_status}, "
                f"A: {context.gender_a}, B: {context.gender_b}",
            ),
            task="Compare elemental balance and Prescribe shared remedies.",
            lang=lang,
            fields=prompts.COMPATIBILITY_FIELDS,
        )
        parts: list[PromptPart] = [
            prompt,
            "Person A Right:", ImagePart(person_a_right),
            "Person A Left:", ImagePart(person_a_left),
            "Person B Right:", ImagePart(person_b_right),
            "Person B Left:", ImagePart(person_b_left),
        ]
        return await self._generator.generate_and_parse(parts, kind="compatibility")

    async def analyze_astrology_compatibility(
        self,
        birth_date_a: str,
        birth_date_b: str,
        context: RelationshipContext,
        lang: str,
    ) -> dict[str, Any]:
        prompt = prompts.build_report_prompt(
            header=(
                "**DIAGNOSIS:** Astrological Synastry.",
                f"**DATA:** A: {birth_date_a}, B: {birth_date_b}, "
                f"Status: {context.relationship_status}",
            ),
            task='Analyze "Al-Mubtazz" (Dominant Planet).',
            lang=lang,
            fields=prompts.COMPATIBILITY_FIELDS,
        )
        return await self._generator.generate_and_parse([prompt], kind="astrology_compatibility")

    async def analyze_temperament_compatibility(
        self,
        temperament_a: str,
        temperament_b: str,
        context: RelationshipContext,
        lang: str,
    ) -> dict[str, Any]:
        prompt = prompts.build_report_prompt(
            header=(
                "**DIAGNOSIS:** Humoral Compatibility.",
                f"**DATA:** A: {temperament_a}, B: {temperament_b}, "
                f"Status: {context.relationship_status}",
            ),
            task="Analyze Heat/Cold interactions.",
            lang=lang,
            fields=prompts.COMPATIBILITY_FIELDS,
        )
        return await self._generator.generate_and_parse([prompt], kind="temperament_compatibility")

    # ------------------------------------------------------------------
    # Single-image diagnoses
    # ------------------------------------------------------------------

    async def analyze_tongue(self, image: str, diagnosis_type: str, lang: str) -> dict[str, Any]:
        prompt = prompts.build_report_prompt(
            header=(f"**DIAGNOSIS:** Tongue Diagnosis ({diagnosis_type}).",),
            task="Analyze Body Color, Shape, and Coating.",
            lang=lang,
            fields=prompts.TONGUE_FIELDS,
            visual_markers=True,
        )
        return await self._generator.generate_and_parse([prompt, ImagePart(image)], kind="tongue")

    async def analyze_iris(self, image: str, iridology_model: str, lang: str) -> dict[str, Any]:
        prompt = prompts.build_report_prompt(
            header=(f"**DIAGNOSIS:** Iridology ({iridology_model}).",),
            task="Analyze Constitution, Lesions, and Rings.",
            lang=lang,
            fields=prompts.IRIS_FIELDS,
            visual_markers=True,
        )
        return await self._generator.generate_and_parse([prompt, ImagePart(image)], kind="iris")

    async def analyze_nails(
        self,
        right_nails: str,
        left_nails: str,
        nail_model: str,
        lang: str,
    ) -> dict[str, Any]:
        prompt = prompts.build_report_prompt(
            header=(f"**DIAGNOSIS:** Clinical Onychoscopy ({nail_model}).",),
            task="Diagnose Color, Shape, Lunula.",
            lang=lang,
            fields=prompts.NAIL_FIELDS,
            visual_markers=True,
        )
        parts: list[PromptPart] = [
            prompt,
            "Right Hand:", ImagePart(right_nails),
            "Left Hand:", ImagePart(left_nails),
        ]
        return await self._generator.generate_and_parse(parts, kind="nails")

    async def analyze_face(self, image: str, face_model: str, lang: str) -> dict[str, Any]:
        prompt = prompts.build_report_prompt(
            header=(f"**DIAGNOSIS:** Physiognomy ({face_model}).",),
            task="Analyze 3 Zones and 12 Palaces.",
            lang=lang,
            fields=prompts.FACE_FIELDS,
            visual_markers=True,
        )
        return await self._generator.generate_and_parse([prompt, ImagePart(image)], kind="face")

    # ------------------------------------------------------------------
    # Text-only diagnoses
    # ------------------------------------------------------------------

    async def analyze_temperament(self, inputs: Mapping[str, str], lang: str) -> dict[str, Any]:
        prompt = prompts.build_report_prompt(
            header=(
                "**DIAGNOSIS:** Clinical Mizajology.",
                f"## INPUTS: {json.dumps(dict(inputs), indent=2, ensure_ascii=False)}",
            ),
            task="Determine Imbalance.",
            lang=lang,
            fields=prompts.TEMPERAMENT_FIELDS,
        )
        return await self._generator.generate_and_parse([prompt], kind="temperament")

    async def interpret_dream(
        self,
        description: str,
        waking_feeling: str,
        interpretation_model: str,
        lang: str,
    ) -> dict[str, Any]:
        prompt = prompts.build_report_prompt(
            header=(
                f"**DIAGNOSIS:** Dream Interpretation (Taa'bir), {interpretation_model} tradition.",
                f'**DREAM:** "{description}"',
                f"**WAKING FEELING:** {waking_feeling}",
            ),
            task="Interpret symbols.",
            lang=lang,
            fields=prompts.DREAM_FIELDS,
        )
        return await self._generator.generate_and_parse([prompt], kind="dream")

    async def astrology_report(
        self,
        birth_date: str,
        birth_time: str | None,
        birth_place: str | None,
        lang: str,
    ) -> dict[str, Any]:
        prompt = prompts.build_report_prompt(
            role=f"{prompts.HAKIM_PERSONA} & Munajjim-Bashi.",
            header=(f"**DATA:** {birth_date} {birth_time or 'Noon'} {birth_place or 'Unknown'}",),
            task="Calculate positions and Prescribe.",
            lang=lang,
            fields=prompts.ASTROLOGY_FIELDS,
        )
        return await self._generator.generate_and_parse([prompt], kind="astrology")

    async def analyze_sujok(
        self,
        images: Mapping[str, str | None],
        symptoms: str,
        lang: str,
    ) -> dict[str, Any]:
        """images keys: right_hand, left_hand, right_foot, left_foot (all optional)."""
        prompt = prompts.build_report_prompt(
            role="Professor Park Jae Woo AND The Grand Hakim.",
            header=(
                "**METHOD:** Sujok & Holistic Medicine.",
                f'**SYMPTOMS:** "{symptoms}"',
            ),
            task="Diagnose and Prescribe.",
            lang=lang,
            fields=prompts.SUJOK_FIELDS,
            visual_markers=True,
        )
        parts: list[PromptPart] = [prompt]
        for key, label in (
            ("right_hand", "Image: Right Hand"),
            ("left_hand", "Image: Left Hand"),
            ("right_foot", "Image: Right Foot"),
            ("left_foot", "Image: Left Foot"),
        ):
            image = images.get(key)
            if image:
                parts.extend((label, ImagePart(image)))
        return await self._generator.generate_and_parse(parts, kind="sujok")

    # ------------------------------------------------------------------
    # History-based reports
    # ------------------------------------------------------------------

    async def analyze_comparison(
        self,
        items: Sequence[Mapping[str, Any]],
        lang: str,
    ) -> dict[str, Any]:
        """
        Trend analysis across past reports.

        Reports are presented oldest first. At most COMPARISON_MAX_IMAGES
        images are attached, taken from the most recent reports, and only
        images under COMPARISON_IMAGE_MAX_CHARS characters qualify.
        """
        ordered = sort_chronologically(items)
        summaries = "\n\n-----------------\n\n".join(
            f"[DATE: {item.get('date', '')} | TYPE: {str(item.get('type', '')).upper()}]\n"
            f"SUMMARY: {report_summary(item)[:COMPARISON_SUMMARY_MAX_CHARS]}"
            for item in ordered
        )
        prompt = prompts.build_report_prompt(
            header=(
                "**OBJECTIVES:** Trend Analysis & Root Cause.",
                f"**USER REPORTS:** {summaries}",
            ),
            task="HEALTH TRACKING & SYNTHESIS",
            lang=lang,
            fields=prompts.COMPARISON_FIELDS,
        )

        parts: list[PromptPart] = [prompt]
        attached = 0
        for item in reversed(ordered):
            if attached >= COMPARISON_MAX_IMAGES:
                break
            image = history_image(item)
            if image and len(image) < COMPARISON_IMAGE_MAX_CHARS:
                parts.extend(("Most Recent Image:", ImagePart(image)))
                attached += 1

        return await self._generator.generate_and_parse(parts, kind="comparison")

    async def synergy_report(
        self,
        items: Sequence[Mapping[str, Any]],
        lang: str,
    ) -> dict[str, Any]:
        combined = "\n".join(
            f"[{str(item.get('type', '')).upper()}]: "
            f"{_compact_json(item.get('report') or {})[:SYNERGY_REPORT_MAX_CHARS]}"
            for item in items
        )
        prompt = prompts.build_report_prompt(
            header=(f"## DATA: {combined}",),
            task="Synthesize reports. Find Root Cause.",
            lang=lang,
            fields=prompts.SYNERGY_FIELDS,
        )
        return await self._generator.generate_and_parse([prompt], kind="synergy")

    async def daily_outlook(
        self,
        reports: Mapping[str, Any],
        lang: str,
    ) -> dict[str, Any]:
        """reports keys: palm, temperament, astrology, face (all optional)."""
        present = {name: report for name, report in reports.items() if report}
        if present:
            history = _compact_json(present)[:DAILY_OUTLOOK_HISTORY_MAX_CHARS]
        else:
            history = "NO HISTORY AVAILABLE."

        prompt = prompts.build_report_prompt(
            role="The Wise Hakim.",
            header=(f"**CONTEXT:** {history}",),
            task='Generate a "Daily Prescription".',
            lang=lang,
            fields=prompts.DAILY_OUTLOOK_FIELDS,
            remedies=False,
        )
        return await self._generator.generate_and_parse([prompt], kind="daily_outlook")

    # ------------------------------------------------------------------
    # Free-text lookups
    # ------------------------------------------------------------------

    async def encyclopedia(self, query: str, lang: str) -> EncyclopediaEntry:
        """
        Encyclopedia lookup.

        Grounding sources are not exposed by the chat completions API, so
        sources is always empty.
        """
        try:
            text = await self._generator.generate_text(prompts.encyclopedia_prompt(query, lang))
        except Exception as exc:
            log_event({
                "ts_ms": now_ms(),
                "event_type": "ENCYCLOPEDIA_FAILED",
                "error": f"{type(exc).__name__}: {exc}",
            })
            raise ReportGenerationError("Failed to fetch encyclopedia info.") from exc
        return EncyclopediaEntry(text=text or "No information found.")

    async def science_history(self, topic: str, lang: str) -> str:
        text = await self._generator.generate_text(prompts.science_history_prompt(topic, lang))
        return text or "History not available."
