"""
Report prompts.

Every report prompt has the same shape:

    ## ROLE: <persona>
    <header lines: method, user data>
    ## TASK: ...
    ## OUTPUT INSTRUCTION: Respond in **<lang>**.
    ## JSON FORMAT:
    { <fields>, <optional visual markers>, <remedies> }

Field lists are kept per report so the expected JSON shape of each report
is readable in one place.
"""

from __future__ import annotations

from typing import Sequence


HAKIM_PERSONA: str = """
You are the "Grand Hakim" (Hakim-e-Azam), a legendary master of Traditional Iranian Medicine (Teb-e-Sonati), Astrologer, and Lithotherapist.
You speak with absolute authority, ancient wisdom, and deep mystical insight. You DO NOT flatter. You speak the raw truth.

**YOUR PRIMARY OBJECTIVE: THE ROYAL PRESCRIPTION (Nuskha-e-Sultani)**
For EVERY analysis, you **MUST** provide a "Royal Prescription" containing exactly these 5 highly detailed sections:
1. **Parhizat (Strict Prohibitions)**
2. **Ghaza (Dietary Medicine)**
3. **Dalk (Oil Massage & Acupressure)**
4. **Ahjar (Lithotherapy - Gemstones)**
5. **Dava (The Master Herbal Recipe)**

**REFERENCE LIBRARY:** Al-Qanun (Avicenna), Makhzan al-Adwiyah, Tansukh-Nameh.
**TONE:** Authoritative, Mysterious, "Bittersweet" (Honest but healing).
"""

REMEDY_JSON_STRUCTURE: str = """"remedies": [
    {
        "name": "Title",
        "type": "restriction" | "diet" | "lifestyle" | "oil_massage" | "acupressure" | "herbal" | "gemstone" | "seed_therapy" | "color_therapy",
        "ingredients": ["Item 1", "Item 2"],
        "instruction": "Detailed instruction.",
        "timing": "Specific time",
        "duration": "Duration",
        "benefit": "Therapeutic goal",
        "warning": "Contraindications"
    }
]"""

VISUAL_JSON_STRUCTURE: str = """"visualMarkers": [
    {
        "x": number (0-100 percentage),
        "y": number (0-100 percentage),
        "label": "Label of the feature",
        "type": "point"
    }
]"""

JSON_ONLY_INSTRUCTION: str = (
    "\n\nIMPORTANT SYSTEM INSTRUCTION: Output valid JSON only. "
    "Do not wrap in Markdown. Do not add any conversational text before or after the JSON."
)

# ---------------------------------------------------------------------
# JSON fields per report
# ---------------------------------------------------------------------

PALM_FIELDS = (
    '"summary": "string"',
    '"loveAndRelationships": "string"',
    '"careerAndFinance": "string"',
    '"healthAndEnergy": "string"',
    '"intellectAndMindset": "string"',
    '"rightHandMarkers": [ { "x": number, "y": number, "label": "string", "type": "point" } ]',
    '"leftHandMarkers": [ { "x": number, "y": number, "label": "string", "type": "point" } ]',
)

COMPATIBILITY_FIELDS = (
    '"summary": "string"',
    '"emotionalCompatibility": "string"',
    '"intellectualCompatibility": "string"',
    '"lifePathCompatibility": "string"',
    '"synastryScore": number',
    '"finalVerdict": "string"',
)

TONGUE_FIELDS = (
    '"summary": "string"',
    '"colorAndCoating": { "color": "string", "coating": "string" }',
    '"shapeAndSize": "string"',
    '"potentialImbalances": "string"',
)

IRIS_FIELDS = (
    '"summary": "string"',
    '"zoneObservations": { "pupillaryZone": "string", "autonomicNerveWreath": "string", '
    '"ciliaryZone": "string", "limbalZone": "string" }',
    '"potentialWeaknesses": "string"',
)

NAIL_FIELDS = (
    '"summary": "string"',
    '"colorAnalysis": "string"',
    '"shapeAndTextureAnalysis": "string"',
    '"potentialIndications": "string"',
    '"psychologicalAnalysis": "string"',
)

FACE_FIELDS = (
    '"summary": "string"',
    '"foreheadAnalysis": "string"',
    '"eyesAndEyebrowsAnalysis": "string"',
    '"noseAndCheeksAnalysis": "string"',
    '"mouthAndChinAnalysis": "string"',
    '"lifePotential": "string"',
)

TEMPERAMENT_FIELDS = (
    '"summary": "string"',
    '"dominantTemperament": "string"',
    '"currentImbalance": "string"',
    '"generalCharacteristics": "string"',
    '"temperamentAnalysis": "string"',
    '"dietaryRecommendations": "string"',
    '"lifestyleRecommendations": "string"',
)

DREAM_FIELDS = (
    '"summary": "string"',
    '"symbolAnalysis": "string"',
    '"temporalAnalysis": "string"',
    '"psychologicalInsight": "string"',
    '"actionableAdvice": "string"',
    '"reflectionQuestion": "string"',
)

ASTROLOGY_FIELDS = (
    '"cosmicIdentity": "string"',
    '"planetaryGeometry": "string"',
    '"starConstellations": "string"',
    '"persianArchetype": "string"',
    '"karmicDestiny": "string"',
)

SUJOK_FIELDS = (
    '"summary": "string"',
    '"diagnosis": "string"',
    '"correspondenceSystem": "string"',
    '"energyAnalysis": "string"',
    '"treatmentPlan": "string"',
)

COMPARISON_FIELDS = (
    '"summary": "string"',
    '"timelineAnalysis": "string"',
    '"holisticSynthesis": "string"',
    '"rootCauseAnalysis": "string"',
    '"advice": "string"',
)

SYNERGY_FIELDS = (
    '"holisticSummary": "string"',
    '"keyConnections": "string"',
    '"comprehensiveRecommendations": "string"',
)

DAILY_OUTLOOK_FIELDS = (
    '"wisdom": "string"',
    '"restriction": "string"',
    '"goldenTip": "string"',
)


# ---------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------

def json_format(
    fields: Sequence[str],
    *,
    visual_markers: bool = False,
    remedies: bool = True,
) -> str:
    """Render the JSON skeleton the model must fill in."""
    entries = list(fields)
    if visual_markers:
        entries.append(VISUAL_JSON_STRUCTURE)
    if remedies:
        entries.append(REMEDY_JSON_STRUCTURE)
    body = ",\n  ".join(entries)
    return "{\n  " + body + "\n}"


def build_report_prompt(
    *,
    task: str,
    lang: str,
    fields: Sequence[str],
    header: Sequence[str] = (),
    role: str = HAKIM_PERSONA,
    visual_markers: bool = False,
    remedies: bool = True,
) -> str:
    """Assemble a full report prompt."""
    lines = [f"## ROLE: {role}"]
    lines.extend(header)
    lines.append(f"## TASK: {task}")
    lines.append(f"## OUTPUT INSTRUCTION: Respond in **{lang}**.")
    lines.append("## JSON FORMAT:")
    lines.append(json_format(fields, visual_markers=visual_markers, remedies=remedies))
    return "\n".join(lines) + "\n"


def encyclopedia_prompt(query: str, lang: str) -> str:
    return f'Explain: "{query}". Reference Iranian Medicine. Respond in {lang}.'


def science_history_prompt(topic: str, lang: str) -> str:
    return f'Write a historical essay about: "{topic}". Focus on ancient origins. Language: {lang}.'


def chat_system_prompt(lang: str, context_prompt: str | None = None) -> str:
    """System instruction for a free-form conversation with the Hakim."""
    lines = [
        "## ROLE: The ChiroAI Sage (Grand Hakim)",
        "Expert in Traditional Medicine.",
        f"Respond in **{lang}**.",
    ]
    if context_prompt:
        lines.append(context_prompt)
    return "\n".join(lines) + "\n"
