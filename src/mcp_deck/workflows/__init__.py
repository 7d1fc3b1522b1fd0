"""Container start workflows."""
from mcp_deck.workflows.orchestrator import WorkflowOrchestrator, configuration_chain

__all__ = ["WorkflowOrchestrator", "configuration_chain"]
