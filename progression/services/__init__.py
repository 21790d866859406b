"""Service layer wiring the progression engines together"""
from progression.services.container import ServiceContainer, get_container, init_container
from progression.services.progression_service import ProgressionService, SubsystemResult

__all__ = [
    "ServiceContainer",
    "get_container",
    "init_container",
    "ProgressionService",
    "SubsystemResult",
]
