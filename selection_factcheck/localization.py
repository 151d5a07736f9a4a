from typing import Optional


# language -> (title, detail template); detail takes {limit}
QUOTA_EXCEEDED_MESSAGES: dict[str, tuple[str, str]] = {
    "en": (
        "Trial quota exhausted",
        "The free trial allowance of {limit} tokens has been used up. "
        "Add your own API key in the extension options to keep fact-checking.",
    ),
    "de": (
        "Testkontingent aufgebraucht",
        "Das kostenlose Testkontingent von {limit} Tokens ist aufgebraucht. "
        "Hinterlege in den Erweiterungsoptionen einen eigenen API-Schlüssel, um weiter zu prüfen.",
    ),
    "fr": (
        "Quota d'essai épuisé",
        "Le quota d'essai gratuit de {limit} jetons est épuisé. "
        "Ajoutez votre propre clé API dans les options de l'extension pour continuer.",
    ),
    "es": (
        "Cuota de prueba agotada",
        "Se ha agotado la cuota de prueba gratuita de {limit} tokens. "
        "Añade tu propia clave de API en las opciones de la extensión para seguir verificando.",
    ),
}

DEFAULT_LANGUAGE = "en"


def language_of(locale: Optional[str]) -> str:
    """'de-AT' -> 'de', 'pt_BR' -> 'pt'; blank -> default."""
    normalized = (locale or "").strip().replace("_", "-").lower()
    return normalized.split("-", 1)[0] or DEFAULT_LANGUAGE


def quota_exceeded_message(locale: Optional[str], limit_tokens: int) -> tuple[str, str]:
    title, detail = QUOTA_EXCEEDED_MESSAGES.get(
        language_of(locale), QUOTA_EXCEEDED_MESSAGES[DEFAULT_LANGUAGE]
    )
    return title, detail.format(limit=limit_tokens)
