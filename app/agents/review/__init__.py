from app.agents.review.coordinator import MultiAgentCoordinator

__all__ = ["MultiAgentCoordinator"]
