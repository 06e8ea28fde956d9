"""Prompt and request construction for AI statement extraction.

Builds:
- the fixed system instructions describing the output contract;
- the Responses API ``input`` carrying the document as a base64 data URL;
- the strict JSON Schema ``text.format`` object.
"""

from __future__ import annotations

import base64
from typing import Any

from openai.types.responses import ResponseTextConfigParam

_PDF_MIME = "application/pdf"

TRANSACTION_ITEM_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "date": {"type": "string", "description": "Transaction date, ISO YYYY-MM-DD"},
        "description": {"type": "string"},
        "amount": {"type": "number", "minimum": 0},
        "type": {"type": "string", "enum": ["INCOME", "EXPENSE"]},
        "isInvoicePayment": {"type": "boolean"},
        "suggestedCardMatch": {"type": ["string", "null"]},
    },
    "required": [
        "date",
        "description",
        "amount",
        "type",
        "isInvoicePayment",
        "suggestedCardMatch",
    ],
    "additionalProperties": False,
}


def build_system_instructions() -> str:
    return (
        "You extract transactions from bank and credit card statements. Return one JSON "
        "object with a 'transactions' array and nothing else. For every transaction give: "
        "'date' as YYYY-MM-DD; 'description' exactly as printed; 'amount' as a positive "
        "number; 'type' INCOME for money received and EXPENSE for money spent; "
        "'isInvoicePayment' true only for payments of a credit card bill (e.g. 'PAGAMENTO "
        "FATURA'); 'suggestedCardMatch' with the card issuer for invoice payments (e.g. "
        "'nubank', 'itau') or null. Skip balances, totals and headers."
    )


def build_input(document: bytes, *, file_name: str | None) -> list[dict[str, Any]]:
    """Return the Responses API ``input`` list for one document."""

    encoded = base64.b64encode(document).decode("ascii")
    return [
        {
            "role": "user",
            "content": [
                {
                    "type": "input_file",
                    "filename": file_name or "statement.pdf",
                    "file_data": f"data:{_PDF_MIME};base64,{encoded}",
                },
                {
                    "type": "input_text",
                    "text": "Extract every transaction from this statement.",
                },
            ],
        }
    ]


def build_text_config() -> ResponseTextConfigParam:
    return {
        "format": {
            "type": "json_schema",
            "name": "statement_transactions",
            "schema": {
                "type": "object",
                "properties": {
                    "transactions": {"type": "array", "items": TRANSACTION_ITEM_SCHEMA},
                },
                "required": ["transactions"],
                "additionalProperties": False,
            },
            "strict": True,
        }
    }


__all__ = [
    "TRANSACTION_ITEM_SCHEMA",
    "build_input",
    "build_system_instructions",
    "build_text_config",
]
