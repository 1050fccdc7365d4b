from gearshelf.ingestion.orchestrator import IngestionOrchestrator

__all__ = ['IngestionOrchestrator']
