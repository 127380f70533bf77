"""Re-export all models so Base.metadata sees them."""

from sailsmart.db.models.conversation_archive import AIConversation
from sailsmart.db.models.identity_document import IdentityDocument
from sailsmart.db.models.journey import Journey, Leg
from sailsmart.db.models.notification import Notification
from sailsmart.db.models.onboarding_session import OwnerSession, ProspectSession
from sailsmart.db.models.profile import Profile
from sailsmart.db.models.registration import Registration, RegistrationAnswer
from sailsmart.db.models.requirement import JourneyRequirement

__all__ = [
    "AIConversation",
    "IdentityDocument",
    "Journey",
    "JourneyRequirement",
    "Leg",
    "Notification",
    "OwnerSession",
    "Profile",
    "ProspectSession",
    "Registration",
    "RegistrationAnswer",
]
