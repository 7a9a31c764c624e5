from vetchat.conversation.booking_flow import BookingFlow, FlowReply
from vetchat.conversation.orchestrator import ConversationOrchestrator
from vetchat.conversation.state_machine import (
    BookingStateMachine,
    BookingTrigger,
    InvalidTransitionError,
)

__all__ = [
    "BookingFlow",
    "FlowReply",
    "ConversationOrchestrator",
    "BookingStateMachine",
    "BookingTrigger",
    "InvalidTransitionError",
]
