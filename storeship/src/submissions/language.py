from typing import Dict, Optional

DEFAULT_LANGUAGE = "en-US"

# App Store Connect primary locales
LANGUAGES: Dict[str, str] = {
    "ar-SA": "Arabic",
    "ca": "Catalan",
    "zh-Hans": "Chinese (Simplified)",
    "zh-Hant": "Chinese (Traditional)",
    "hr": "Croatian",
    "cs": "Czech",
    "da": "Danish",
    "nl-NL": "Dutch",
    "en-AU": "English (Australia)",
    "en-CA": "English (Canada)",
    "en-GB": "English (U.K.)",
    "en-US": "English (U.S.)",
    "fi": "Finnish",
    "fr-FR": "French",
    "fr-CA": "French (Canada)",
    "de-DE": "German",
    "el": "Greek",
    "he": "Hebrew",
    "hi": "Hindi",
    "hu": "Hungarian",
    "id": "Indonesian",
    "it": "Italian",
    "ja": "Japanese",
    "ko": "Korean",
    "ms": "Malay",
    "no": "Norwegian",
    "pl": "Polish",
    "pt-BR": "Portuguese (Brazil)",
    "pt-PT": "Portuguese (Portugal)",
    "ro": "Romanian",
    "ru": "Russian",
    "sk": "Slovak",
    "es-MX": "Spanish (Mexico)",
    "es-ES": "Spanish (Spain)",
    "sv": "Swedish",
    "th": "Thai",
    "tr": "Turkish",
    "uk": "Ukrainian",
    "vi": "Vietnamese",
}


def sanitize_language(language: Optional[str]) -> str:
    """Map a locale code or English language name to an App Store Connect locale."""
    if not language:
        return DEFAULT_LANGUAGE

    wanted = language.strip().lower()
    for code, name in LANGUAGES.items():
        if wanted in (code.lower(), name.lower()):
            return code

    valid = ", ".join(f"{code} ({name})" for code, name in LANGUAGES.items())
    raise ValueError(f"Invalid language '{language}'. Valid languages: {valid}")
