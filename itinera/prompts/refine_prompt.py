"""Prompts for refining an existing value through dialogue."""

REFINE_SYSTEM_PROMPT = (
    "Tu es un assistant expert en agronomie française. L'utilisateur veut affiner "
    "un calcul précédent. Prends en compte son message et recalcule si nécessaire. "
    "Réponds en JSON valide."
)

_REFINE_FORMAT = """Recalcule la valeur si nécessaire et réponds en JSON avec :
{ "applicable": true|false, "value": nombre ou "N/A", "confidence": "high"|"medium"|"low", "reasoning": string, "assumptions": string[], "calculation_steps": string[], "sources": string[], "caveats": string[] }

**IMPORTANT** :
1. Si l'indicateur n'est pas applicable, retourne {"applicable": false, "value": "N/A", "reasoning": "explication"}
2. Sinon, commence TOUJOURS le "reasoning" par la nouvelle valeur calculée. Par exemple : "J'ai calculé une nouvelle valeur de 150 pour cet indicateur. Voici pourquoi : ..."
3. Dans "assumptions", retourne la liste COMPLÈTE et MISE À JOUR de TOUTES les hypothèses de cette intervention (pas seulement les nouvelles), en y intégrant les informations fournies par l'utilisateur."""


def build_refine_prompt(user_message: str) -> str:
    """Build the user turn for a refinement request."""
    return f"Demande de raffinement : {user_message}\n\n{_REFINE_FORMAT}"
