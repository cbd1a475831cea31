"""
Prompt builders for AI enrichment

The system prompt fixes the JSON reply format and the confidence rules
for the configured match mode. All free text in replies is requested in
Spanish.
"""
import json
from typing import Any

from .models import ClientContext, EnrichableField

MODE_INSTRUCTIONS = {
    "exact": (
        "Use ONLY exact matches. Only include data you are highly confident about (>90% certainty).\n"
        "Do not make assumptions or guesses."
    ),
    "fuzzy": (
        "Use fuzzy matching. Include data with moderate confidence (>70% certainty).\n"
        "You may make reasonable inferences based on available information."
    ),
    "broad": (
        "Use broad matching. Include data with lower confidence (>50% certainty).\n"
        "Make educated guesses when direct information is not available."
    ),
}

FIELD_DESCRIPTIONS = {
    EnrichableField.WEBSITE: "Official website URL",
    EnrichableField.EMAILS: (
        "Contact email addresses (array of objects with email and type: general, sales, support, etc.)"
    ),
    EnrichableField.PHONES: "Phone numbers (array of objects with number and type: main, mobile, fax, etc.)",
    EnrichableField.ADDRESS: "Full business address",
    EnrichableField.DESCRIPTION: "Brief company description (2-3 sentences)",
    EnrichableField.INDUSTRY: "Industry/sector classification",
    EnrichableField.COMPANY_SIZE: "Company size (startup, small, medium, large, enterprise)",
    EnrichableField.SOCIAL_PROFILES: (
        "Social media profile URLs. Look for: instagram, facebook, linkedin, twitter (x.com), youtube, tiktok. "
        "Return as object with platform names as keys and full profile URLs as values. "
        "ONLY include profiles you can VERIFY exist - do NOT guess or infer handles. "
        "If you find a link on the company website or can confirm the profile exists, include it. "
        "Otherwise, omit it."
    ),
}

RESPONSE_TEMPLATE = """{
  "website": { "value": "https://...", "score": 0.95, "source": "razonamiento" } | null,
  "emails": { "value": [{"email": "...", "type": "..."}], "score": 0.8, "source": "razonamiento" } | null,
  "phones": { "value": [{"number": "...", "type": "..."}], "score": 0.7, "source": "razonamiento" } | null,
  "address": { "value": "direccion completa", "score": 0.85, "source": "razonamiento" } | null,
  "description": { "value": "descripcion en espanol", "score": 0.9, "source": "razonamiento" } | null,
  "industry": { "value": "industria en espanol", "score": 0.88, "source": "razonamiento" } | null,
  "companySize": { "value": "pequena|mediana|grande|enterprise", "score": 0.75, "source": "razonamiento" } | null,
  "socialProfiles": { "value": {"linkedin": "url", "facebook": "url", ...}, "score": 0.82, "source": "razonamiento" } | null
}"""

ARBITRATION_SYSTEM_PROMPT = (
    "You are a data validation expert. Analyze the results and determine the most accurate value. "
    "All text content in your response (reasoning, descriptions) MUST be written in Spanish."
)

URL_VERIFICATION_SYSTEM_PROMPT = "You are a website ownership verification expert."


def enrichment_system_prompt(match_mode: str) -> str:
    instructions = MODE_INSTRUCTIONS.get(match_mode, MODE_INSTRUCTIONS["fuzzy"])
    return f"""You are a business data enrichment specialist. Your task is to find and verify information about companies and businesses.

IMPORTANT RULES:
1. {instructions}
2. Always return valid JSON in the exact format requested.
3. Include a confidence score (0.0 to 1.0) for each piece of information.
4. If you cannot find information, use null for the value.
5. For websites, always include the full URL with protocol (https://).
6. For social profiles, include the full profile URL (e.g. https://instagram.com/handle). ONLY include social profiles you have VERIFIED exist - do NOT guess or infer handles based on business names. If you cannot confirm a profile exists, do not include it.
7. Be specific and accurate - quality over quantity.
8. Cite your reasoning in the "source" field when applicable.
9. ALL text values in the response (descriptions, industry names, sources, reasoning) MUST be written in Spanish. Do not use English for any text content.

RESPONSE FORMAT:
Always respond with valid JSON only. No explanations outside the JSON."""


def client_summary(client: ClientContext) -> str:
    """Known facts about the client, one per line, skipping blanks"""
    lines = [
        f"Company/Business Name: {client.nombre}",
        client.email and f"Known Email: {client.email}",
        client.telefono and f"Known Phone: {client.telefono}",
        client.direccion and f"Known Address: {client.direccion}",
        client.ciudad and f"City: {client.ciudad}",
        client.industria and f"Industry: {client.industria}",
        client.sitio_web and f"Known Website: {client.sitio_web}",
        client.notas and f"Notes: {client.notas}",
    ]
    return "\n".join(line for line in lines if line)


def enrichment_prompt(client: ClientContext, fields: list[EnrichableField]) -> str:
    requested = "\n".join(f"- {f.value}: {FIELD_DESCRIPTIONS.get(f, f.value)}" for f in fields)
    return f"""Find and verify information about this business (likely based in Argentina or Latin America):

{client_summary(client)}

Please find the following information:
{requested}

IMPORTANT:
- All text content (descriptions, industry names, source/reasoning explanations) MUST be written in Spanish.
- For social profiles: ONLY include profiles you can verify exist. Do NOT guess or infer handles based on business names. If you found the link on the company website or have evidence the profile exists, include it. Otherwise, leave it out.

Respond with a JSON object containing:
{RESPONSE_TEMPLATE}

Only include fields that were requested. Use null for fields you cannot find with confidence."""


def enrichment_messages(client: ClientContext, fields: list[EnrichableField], match_mode: str) -> list[dict]:
    return [
        {"role": "system", "content": enrichment_system_prompt(match_mode)},
        {"role": "user", "content": enrichment_prompt(client, fields)},
    ]


def consensus_prompt(field_name: str, candidates: list[dict[str, Any]]) -> str:
    """Arbitration prompt listing every candidate value with its provider and score"""
    results_text = "\n".join(
        f"Result {i} ({c['provider']}, confidence {c['score']}): {json.dumps(c['value'], ensure_ascii=False)}"
        for i, c in enumerate(candidates, start=1)
    )
    return f"""Multiple AI providers returned different results for "{field_name}". Analyze and determine the best value:

{results_text}

IMPORTANT: Write the "reasoning" field in Spanish.

Respond with JSON:
{{
  "bestValue": <the most accurate value>,
  "confidence": 0.0-1.0,
  "reasoning": "razon por la cual se eligio este valor",
  "allValuesMatch": true/false
}}"""


def url_verification_prompt(url: str, company_name: str) -> str:
    return f"""Verify if this URL belongs to the company "{company_name}":

URL: {url}

IMPORTANT: Write the "reasoning" field in Spanish.

Analyze and respond with JSON:
{{
  "isValid": true/false,
  "isOfficial": true/false,
  "confidence": 0.0-1.0,
  "reasoning": "explicacion en espanol",
  "alternativeUrl": "correct URL if different" | null
}}"""
