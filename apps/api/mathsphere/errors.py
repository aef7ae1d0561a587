from __future__ import annotations

import math
import re
from typing import Optional


class PipelineError(Exception):
    """Base error for the lesson audit pipeline.

    Every subclass carries a category tag so that failures can be reported
    to the caller as ``"[Category] message"`` while keeping the verbatim
    provider or parser message.
    """

    category: str = "PipelineError"
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def tagged(self) -> str:
        return f"[{self.category}] {self.message}"


class QuotaExceeded(PipelineError):
    category = "QuotaExceeded"
    retryable = True


class Overloaded(PipelineError):
    category = "Overloaded"
    retryable = True


class FatalProviderError(PipelineError):
    category = "FatalProviderError"


class AttachmentUnavailable(PipelineError):
    category = "AttachmentUnavailable"


class DecodeFailure(PipelineError):
    category = "DecodeFailure"


class UnsupportedDocument(PipelineError):
    category = "UnsupportedDocument"


class LessonNotFound(PipelineError):
    category = "LessonNotFound"


class ProviderError(Exception):
    """Raised by provider clients; status is the HTTP status when known."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status

    def __str__(self) -> str:
        if self.status is not None:
            return f"{self.status}: {self.message}"
        return self.message


def describe_provider_error(error: BaseException) -> str:
    message = getattr(error, "message", None) or str(error) or "Une erreur est survenue lors de la génération"
    status = getattr(error, "status", None)
    lowered = message.lower()

    if (
        status == 429
        or ("429" in message and "too many requests" in lowered)
        or "quota exceeded" in lowered
        or ("quota" in lowered and "exceeded" in lowered)
    ):
        limit = re.search(r"limit:\s*(\d+)", message, re.IGNORECASE)
        delay = re.search(r"retry in ([\d.]+)s", message, re.IGNORECASE) or re.search(
            r"retryDelay[\"\s:]+([\d.]+)", message, re.IGNORECASE
        )
        if limit:
            quota_info = f" Vous avez atteint la limite quotidienne de {limit.group(1)} requêtes gratuites pour ce modèle."
        else:
            quota_info = " Vous avez atteint votre limite quotidienne de requêtes gratuites."
        if delay:
            seconds = math.ceil(float(delay.group(1)))
            plural = "s" if seconds > 1 else ""
            retry_info = f" Le quota sera réinitialisé dans {seconds} seconde{plural}."
        else:
            retry_info = " Le quota sera réinitialisé demain ou vous pouvez passer à un plan payant."
        return f"Quota quotidien de l'API Google Generative AI dépassé.{quota_info}{retry_info}"

    if status == 503 or "503" in message or "overloaded" in lowered or "service unavailable" in lowered:
        return (
            "Le service IA est actuellement surchargé (Erreur 503). "
            "Veuillez réessayer dans quelques instants."
        )
    if "api_key" in lowered or "api key" in lowered:
        return "Clé API invalide. Veuillez contacter l'administrateur."
    if "safety" in lowered or "blocked" in lowered:
        return "Le contenu a été bloqué par les filtres de sécurité. Veuillez modifier vos instructions."
    if "rate_limit" in lowered or "rate limit" in lowered:
        return "Trop de requêtes. Veuillez réessayer dans quelques instants."
    if "timeout" in lowered or "timed out" in lowered:
        return (
            "La requête a pris trop de temps. Le prompt est peut-être trop long. "
            "Veuillez réessayer ou simplifier vos instructions."
        )
    if "network" in lowered or "econnrefused" in lowered or "connection refused" in lowered:
        return "Erreur de connexion à l'API. Vérifiez votre connexion internet et réessayez."
    return message
