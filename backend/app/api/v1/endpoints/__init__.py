# API endpoints
from . import auth, health, clinical, skills, portfolios, reports

__all__ = ["auth", "health", "clinical", "skills", "portfolios", "reports"]
