# utils/locale_rules.py
"""Typographic and register conventions per manuscript language."""

from __future__ import annotations

LANGUAGE_NAMES: dict[str, str] = {
    "es": "Spanish",
    "en": "English",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "ca": "Catalan",
}

EDITORIAL_RULES: dict[str, list[str]] = {
    "es": [
        "Dialogue opens with an em dash (—); attributions are set off with em dashes: —Hola —dijo María—. ¿Cómo estás?",
        "Use angle quotes « » for quotations; English quotes only for quotes within quotes.",
        "Questions and exclamations carry opening and closing marks (¿? ¡!).",
        "Spell out numbers one to nine; use figures from 10.",
    ],
    "en": [
        'Dialogue in double quotation marks: "Hello," said Mary. "How are you?"',
        "Single quotes only for quotes within quotes.",
        "Periods and commas go inside the closing quotation mark.",
        "Spell out numbers one to nine; use figures from 10.",
        "Keep natural contractions in dialogue.",
    ],
    "fr": [
        "Dialogue in French guillemets « » with non-breaking spaces; em dash for interjections.",
        "Non-breaking space before : ; ! ? and inside guillemets.",
        "Spell out numbers one to nine; use figures from 10.",
        "Names of languages and nationalities used as adjectives are lower case.",
    ],
    "de": [
        "Dialogue in „…“ or »…« quotation marks, consistently.",
        "Single ‚…‘ marks for quotes within quotes.",
        "Hyphenate compound words correctly.",
        "Spell out numbers one to nine; use figures from 10.",
    ],
    "it": [
        "Dialogue uses only the em dash (—), never quotation marks: —Ciao —disse Maria—. Come stai?",
        "The final period goes after the closing dash of an attribution.",
        "Check grave and acute accents (è, à, perché).",
        "Spell out numbers one to nine; use figures from 10.",
    ],
    "pt": [
        "Dialogue opens with a travessão (—): — Olá — disse Maria.",
        "Curved double quotes for quotations; single quotes within quotes.",
        "Commas and periods go outside quotes unless part of the quotation.",
        "Spell out numbers one to nine; use figures from 10.",
    ],
    "ca": [
        "Dialogue opens with an em dash (—): —Hola —va dir Maria—. Com estàs?",
        "Low quotes « » for quotations; high quotes within quotes.",
        "Spell out numbers one to nine; use figures from 10.",
    ],
}


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code.lower(), code)


def editorial_rules(code: str) -> list[str]:
    """Rules for ``code``; unknown languages get the English set."""
    return EDITORIAL_RULES.get(code.lower(), EDITORIAL_RULES["en"])
