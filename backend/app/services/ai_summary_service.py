"""
Client du service de synthèse IA (API compatible chat completions).

Transforme un jeu de métriques de vol en commentaire rédigé. Tout échec (réseau,
statut HTTP, réponse inattendue, clé absente) lève SummarizationError.
"""

import json
import logging
from typing import Any, Optional

import httpx

from app.config import settings
from app.exceptions import SummarizationError, ValidationError
from app.schemas.analytics import BATTERY_EFFICIENCY, MOVEMENT_PATTERNS, PERFORMANCE

logger = logging.getLogger(__name__)

PROMPTS = {
    BATTERY_EFFICIENCY: (
        "Tu es analyste de l'efficacité batterie pour des opérations de drones d'inventaire.",
        "Analyse ces métriques de batterie : {metrics}\n"
        "Points attendus :\n"
        "1. Consommation par vol, par scan et par minute\n"
        "2. Écarts notables et causes probables\n"
        "3. Recommandations concrètes pour réduire la consommation",
    ),
    MOVEMENT_PATTERNS: (
        "Tu es analyste des schémas de déplacement de drones d'inventaire.",
        "Analyse ces statistiques de mouvements : {metrics}\n"
        "Points attendus :\n"
        "1. Mouvements les plus utilisés et leur coût batterie\n"
        "2. Corrélations avec la réussite des scans\n"
        "3. Améliorations possibles des trajectoires",
    ),
    PERFORMANCE: (
        "Tu es analyste de la performance globale d'une flotte de drones d'inventaire.",
        "Analyse ces indicateurs de performance : {metrics}\n"
        "Points attendus :\n"
        "1. Efficacité globale (articles par minute, par unité de batterie)\n"
        "2. Optimisation de l'usage batterie\n"
        "3. Efficacité des mouvements",
    ),
}


async def summarize(kind: str, metrics: Any, client: Optional[httpx.AsyncClient] = None) -> str:
    """
    Demande au service IA une synthèse des métriques pour le type d'analyse donné.
    client peut être fourni (tests, réutilisation de connexions).
    """
    if kind not in PROMPTS:
        raise ValidationError(f"Type d'analyse inconnu : {kind}.")
    if not settings.AI_API_KEY:
        raise SummarizationError("Service IA non configuré (AI_API_KEY absente).")

    system_prompt, user_template = PROMPTS[kind]
    payload = {
        "model": settings.AI_MODEL,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_template.format(metrics=json.dumps(metrics, default=str))},
        ],
        "max_tokens": settings.AI_MAX_TOKENS,
        "temperature": settings.AI_TEMPERATURE,
    }
    headers = {"Authorization": f"Bearer {settings.AI_API_KEY}"}

    try:
        if client is None:
            async with httpx.AsyncClient(timeout=settings.AI_TIMEOUT_SECONDS) as own_client:
                response = await own_client.post(settings.AI_API_URL, json=payload, headers=headers)
        else:
            response = await client.post(settings.AI_API_URL, json=payload, headers=headers)
        response.raise_for_status()
        content = response.json()["choices"][0]["message"]["content"]
    except httpx.HTTPError as exc:
        logger.warning("Échec de l'appel au service IA (%s) : %s", kind, exc)
        raise SummarizationError(f"Échec de l'analyse {kind}.") from exc
    except (KeyError, IndexError, TypeError, ValueError) as exc:
        logger.warning("Réponse inattendue du service IA (%s) : %s", kind, exc)
        raise SummarizationError(f"Réponse invalide du service IA pour l'analyse {kind}.") from exc

    if not isinstance(content, str) or not content.strip():
        raise SummarizationError(f"Réponse vide du service IA pour l'analyse {kind}.")
    return content.strip()
