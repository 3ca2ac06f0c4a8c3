# Importing the models registers them on Base.metadata
from tripdesk.models.user import User
from tripdesk.models.admin import Admin, AdminRole
from tripdesk.models.conversation import (
    Conversation,
    ConversationMessage,
    ConversationStatus,
    ConversationType,
    SupportReason,
)
from tripdesk.models.trip_visit import (
    TripVisit,
    TrustLevel,
    VerificationReason,
    VerificationStatus,
    VisitSource,
)
from tripdesk.models.notification import NotificationOutbox
