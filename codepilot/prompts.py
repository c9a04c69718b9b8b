"""
Prompt templates for the encounter coding assistant.

The system message pins the response to a strict JSON schema so the
source adapter can decode it without guessing.  Content quality of the
instructions is tuned separately; only the structure is relied upon here.
"""

from typing import Dict, List

SUGGESTION_SCHEMA = """{
  "emSuggested": "99213" | "99214" | "99215" | null,
  "emAlternatives": [{"code": "99213", "label": "lower complexity", "recommended": false}],
  "emConfidence": 0.0-1.0,
  "diagnoses": [
    {"code": "E11.9", "description": "Type 2 diabetes mellitus without complications",
     "confidence": 0.0-1.0, "noteSnippets": ["brief snippet from note"]}
  ],
  "procedures": [
    {"code": "J3420", "description": "Injection, vitamin B12", "confidence": 0.0-1.0,
     "noteSnippets": ["brief snippet"], "withinCuratedSet": true}
  ],
  "confidenceBucket": "low" | "medium" | "high",
  "denialRiskLevel": "low" | "medium" | "high",
  "denialRiskReasons": ["reason"],
  "hadUndercodeHint": false,
  "hadMissedServiceHint": false
}"""


def _system_instruction(specialty: str) -> str:
    specialty_label = specialty.strip() or "outpatient"
    return (
        f"You are a conservative medical coding assistant for {specialty_label} encounters. "
        "Suggest E/M codes, ICD-10-CM diagnosis codes and CPT/HCPCS procedure codes "
        "supported by the clinical documentation.\n\n"
        "Rules:\n"
        "1. Never guess codes that are not clearly supported by the note.\n"
        "2. Prefer undercoding over overcoding when uncertain.\n"
        "3. If something is unclear, omit the code and explain it in denialRiskReasons.\n"
        "4. Only suggest E/M codes (99xxx) as the visit level.\n"
        "5. Only suggest procedures that are explicitly documented.\n\n"
        "Respond ONLY with strict JSON matching this schema:\n" + SUGGESTION_SCHEMA
    )


def build_suggestion_prompt(note_text: str, visit_type: str, specialty: str) -> List[Dict[str, str]]:
    """Return chat messages asking for structured coding suggestions."""

    user_content = (
        f"Specialty: {specialty}\n"
        f"Visit Type: {visit_type}\n"
        "Note Text:\n"
        f"{note_text}\n\n"
        "Provide coding suggestions in the exact JSON format specified."
    )
    return [
        {"role": "system", "content": _system_instruction(specialty)},
        {"role": "user", "content": user_content},
    ]
