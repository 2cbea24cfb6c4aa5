"""Realtime consumers: chat conversations, the conversation inbox and the lost-pet feed."""

from .models import ConversationMessage, ConversationSummary
from .conversation import ChatConversation
from .inbox import ConversationInbox
from .lost_pets import LostPetFeed

__all__ = [
    'ConversationMessage',
    'ConversationSummary',
    'ChatConversation',
    'ConversationInbox',
    'LostPetFeed'
]
