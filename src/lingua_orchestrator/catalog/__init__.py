"""Agent and workflow catalog.

This package provides the immutable catalog descriptors and the discovery
service that builds them from manifests on disk.
"""

from lingua_orchestrator.catalog.discovery import CatalogDiscoveryService
from lingua_orchestrator.catalog.types import (
    AgentDescriptor,
    Catalog,
    Descriptor,
    LanguageContext,
    WorkflowDescriptor,
)

__all__ = [
    "AgentDescriptor",
    "Catalog",
    "CatalogDiscoveryService",
    "Descriptor",
    "LanguageContext",
    "WorkflowDescriptor",
]
