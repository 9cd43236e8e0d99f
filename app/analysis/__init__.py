from app.analysis.agent import ComplianceAgent
from app.analysis.factory import ComplianceAgentFactory

__all__ = ["ComplianceAgent", "ComplianceAgentFactory"]
