"""
Structured financial data extraction from tax document text with Claude.

The model is asked for a fixed JSON shape; the reply is parsed leniently
(first ``{...}`` block, dollar strings normalized to numbers) so a chatty or
malformed answer degrades to a zero-confidence result instead of an error.
"""

import json
import logging
import re
from typing import Any, Dict, Optional

import anthropic

from app.config.settings import settings

logger = logging.getLogger(__name__)

NUMERIC_FIELDS = (
    "grossIncome",
    "schedCRevenue",
    "dependents",
    "wages",
    "federalWithholding",
    "stateWithholding",
    "businessIncome",
    "businessExpenses",
)

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


def build_extraction_prompt(pdf_text: str, document_type: str) -> str:
    return f"""You are a tax document data extraction specialist. Extract financial data from the following {document_type} document.

DOCUMENT TEXT:
{pdf_text}

INSTRUCTIONS:
1. Identify and extract all financial values with precision
2. For W-2 forms:
   - Box 1: Wages, tips, other compensation → "wages"
   - Box 2: Federal income tax withheld → "federalWithholding"
   - Box 16: State wages → include in rawFields
   - Box 17: State income tax → "stateWithholding"
3. For 1099 forms:
   - 1099-NEC Box 1: Nonemployee compensation → "businessIncome"
   - 1099-MISC: Various boxes depending on income type → "businessIncome" or "grossIncome"
   - 1099-INT: Interest income → "grossIncome"
   - 1099-DIV: Dividend income → "grossIncome"
4. For receipts:
   - Total amount → include in rawFields as "totalAmount"
   - Categorize the expense type
5. For prior returns:
   - Line 9 (Total income) or Line 11 (AGI) → "grossIncome"
   - Schedule C net profit → "schedCRevenue"
   - Number of dependents if visible → "dependents"
6. Convert all dollar amounts to numbers (remove $, commas)
7. If a value cannot be found or is unclear, use null

RESPOND IN THIS EXACT JSON FORMAT (no additional text, only valid JSON):
{{
  "documentType": "{document_type}",
  "confidence": 0.0 to 1.0,
  "extractedData": {{
    "grossIncome": number or null,
    "schedCRevenue": number or null,
    "dependents": number or null,
    "wages": number or null,
    "federalWithholding": number or null,
    "stateWithholding": number or null,
    "businessIncome": number or null,
    "businessExpenses": number or null
  }},
  "rawFields": {{
    "boxLabel": "value"
  }}
}}"""


def normalize_number(value: Any) -> Optional[float]:
    """Number or None; strings like "$1,234.50" are accepted."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return None if value != value else value  # NaN
    if isinstance(value, str):
        cleaned = value.replace("$", "").replace(",", "").strip()
        match = re.match(r"^[-+]?(\d+\.?\d*|\.\d+)", cleaned)
        return float(match.group(0)) if match else None
    return None


def parse_extraction_response(response_text: str, document_type: str) -> Dict[str, Any]:
    try:
        match = _JSON_BLOCK.search(response_text)
        if not match:
            raise ValueError("No JSON found in response")
        parsed = json.loads(match.group(0))
        extracted = parsed.get("extractedData") or {}
        confidence = parsed.get("confidence")
        return {
            "documentType": parsed.get("documentType") or document_type,
            "confidence": confidence if isinstance(confidence, (int, float)) and not isinstance(confidence, bool) else 0.5,
            "extractedData": {name: normalize_number(extracted.get(name)) for name in NUMERIC_FIELDS},
            "rawFields": parsed.get("rawFields") or {},
        }
    except (ValueError, AttributeError) as e:
        logger.error(f"Failed to parse extraction response: {e}")
        return {
            "documentType": document_type,
            "confidence": 0,
            "extractedData": {},
            "rawFields": {"error": "Failed to parse AI response"},
        }


def map_extraction_to_client_fields(extraction: Dict[str, Any], document_type: str) -> Dict[str, float]:
    """Client field contributions (grossIncome, schedCRevenue, dependents) for one document."""
    data = extraction.get("extractedData") or {}
    updates: Dict[str, float] = {}

    if document_type == "W2":
        if data.get("wages") is not None:
            updates["grossIncome"] = data["wages"]
    elif document_type == "1099":
        if data.get("businessIncome") is not None:
            updates["schedCRevenue"] = data["businessIncome"]
        if data.get("grossIncome") is not None:
            updates["grossIncome"] = data["grossIncome"]
    elif document_type == "Prior Return":
        for name in ("grossIncome", "schedCRevenue", "dependents"):
            if data.get(name) is not None:
                updates[name] = data[name]
    elif document_type in ("Receipt", "Other"):
        if data.get("grossIncome") is not None:
            updates["grossIncome"] = data["grossIncome"]

    return updates


class DocumentExtractor:
    """Sends document text to Claude and parses the structured reply."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, max_tokens: Optional[int] = None):
        self.model = model or settings.extraction_model
        self.max_tokens = max_tokens or settings.extraction_max_tokens
        self.client = anthropic.AsyncAnthropic(api_key=api_key or settings.anthropic_api_key)

    async def extract_financial_data(self, pdf_text: str, document_type: str) -> Dict[str, Any]:
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": build_extraction_prompt(pdf_text, document_type)}],
        )
        content = response.content[0] if response.content else None
        if content is None or content.type != "text":
            raise ValueError("Unexpected response format from Claude")
        return parse_extraction_response(content.text, document_type)