"""
Prompt templates sent to Grok.

Placeholders use {{name}} and are filled with `render_prompt`.
"""

import json
from typing import Any, Dict


QUALIFICATION_SYSTEM_PROMPT = "You are an expert SDR analyst. Follow the instructions exactly."

QUALIFICATION_PROMPT = """You are an SDR analyst. Score the LEAD for product-market fit on 0..100.

Context:
- Product: Grok-powered SDR automation (value: faster qualification, on-brand outreach, pipeline analytics)
- Ideal ICP: B2B SaaS, 50-2000 employees, VP/Head of Sales/RevOps
- Tech fit signals: Salesforce/HubSpot, outreach tools, data warehouses

Lead JSON:
{{lead}}

Scoring profile (weights+rules):
{{scoringProfile}}

Return STRICT JSON:
{
  "score": number,
  "rationale": string,
  "factors": { "industry_fit": number, "size_fit": number, "title_fit": number, "tech_signals": number }
}
Each factor is 0..100."""

OUTREACH_SYSTEM_PROMPT = "You are an expert SDR copywriter. Follow the instructions exactly."

OUTREACH_PROMPT = """You are an expert SDR copywriter. Write a short, personal email that:
- Mentions specific lead/company details (no hallucinations)
- One crisp value prop + concrete outcome
- CTA: 15-min chat with 2 precise time windows
- Friendly, concise, no fluff (at most 110 words)

Input Data:
- Lead: {{lead}}
- Template Body: {{templateBody}}

Return STRICT JSON:
{
  "subject": "string (under 7 words)",
  "body": "string (under 110 words)",
  "safety": {
    "pii_leak": boolean,
    "hallucination_risk": "low" | "med" | "high"
  }
}"""

QUALIFICATION_VERDICT_PROMPT = """Decide whether this LEAD is a qualified prospect for Grok-powered SDR automation.
Ideal ICP: B2B SaaS, 50-2000 employees, VP/Head of Sales/RevOps.

Lead JSON:
{{lead}}

Return STRICT JSON:
{ "qualified": boolean, "confidence": number between 0 and 1, "reasoning": string }"""

JUDGE_PROMPT = """Judge the OUTPUT against this criterion: {{criterion}}.

Expected output description:
{{expected}}

OUTPUT:
{{actual}}

Score 0-1. Return: {"score": number, "reasoning": "brief text"}"""


def render_prompt(template: str, **values: Any) -> str:
    """Fill {{name}} placeholders; non-string values are JSON-encoded."""
    rendered = template
    for name, value in values.items():
        if not isinstance(value, str):
            value = json.dumps(value, indent=2, default=str)
        rendered = rendered.replace("{{" + name + "}}", value)
    return rendered


def messages_for(system_prompt: str, user_prompt: str) -> list:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


def lead_context(lead_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Subset of lead fields shown to the model."""
    company = lead_dict.get("company")
    return {
        "full_name": lead_dict.get("full_name"),
        "title": lead_dict.get("title"),
        "company": {
            "name": company.get("name"),
            "industry": company.get("industry"),
            "size": company.get("size"),
            "domain": company.get("domain"),
        } if company else None,
        "source": lead_dict.get("source"),
        "notes": lead_dict.get("notes"),
    }
