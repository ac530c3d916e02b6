"""
FastAPI dependency injection utilities.
Cada colaborador é um provider isolado; os testes trocam via app.dependency_overrides.
"""
from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from esocial_config import settings
from esocial.adapters.certificate import load_certificate
from esocial.adapters.config_store import ConfigStore
from esocial.adapters.transmission import HttpTransmissionClient, TransmissionLibrary
from esocial.orchestrator import CertificateLoader, EventGateway


@lru_cache
def get_config_store() -> ConfigStore:
    """Uma instância por processo: o cache da configuração vive nela."""
    return ConfigStore(settings.CONFIG_FILE)


def get_transmission() -> TransmissionLibrary:
    return HttpTransmissionClient(settings.TRANSMISSION_URL, timeout=settings.TRANSMISSION_TIMEOUT_SEC)


def get_certificate_loader() -> CertificateLoader:
    return load_certificate


def get_gateway(
    store: Annotated[ConfigStore, Depends(get_config_store)],
    transmission: Annotated[TransmissionLibrary, Depends(get_transmission)],
    certificate_loader: Annotated[CertificateLoader, Depends(get_certificate_loader)],
) -> EventGateway:
    return EventGateway(
        store=store,
        transmission=transmission,
        certificate_loader=certificate_loader,
        future_months=settings.FUTURE_MONTHS_TOLERANCE,
        batch_max_events=settings.BATCH_MAX_EVENTS,
        batch_workers=settings.BATCH_WORKERS,
    )
