from fastapi import Request

from harvester.services.container import Services
from harvester.services.orchestrator import ScrapeOrchestrator


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_orchestrator(request: Request) -> ScrapeOrchestrator:
    return get_services(request).orchestrator
