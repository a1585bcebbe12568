# Import all models here so Alembic can discover them
from app.DB.base import Base

# Challenge first (referenced by participants and certificates)
from app.features.challenges.models import Challenge
from app.features.participants.models import ChallengeParticipant
from app.features.certificates.models import ChallengeCertificate

# This ensures all models are registered with SQLAlchemy
__all__ = [
    "Base",
    "Challenge",
    "ChallengeParticipant",
    "ChallengeCertificate",
]
