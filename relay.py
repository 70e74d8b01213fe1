import logging

logger = logging.getLogger(__name__)

# inbound event -> event name the partner receives
RELAY_EVENTS = {
    'chatMessage': 'chatMessage',
    'mediaMessage': 'mediaMessage',
    'voiceMessage': 'voiceMessage',
    'offer': 'offer',
    'answer': 'answer',
    'ice-candidate': 'ice-candidate',
    'toggle-video': 'partner-video-toggle',
    'toggle-audio': 'partner-audio-toggle',
    'typing': 'typing',
}


class RelayDispatcher:
    """Forwards payloads to the sender's current partner, untouched."""

    def __init__(self, sessions, send):
        self.sessions = sessions
        self.send = send

    def relay(self, sender, event, *payload):
        outbound = RELAY_EVENTS[event]
        partner = self.sessions.partner_of(sender)
        if partner is None:
            # partner may have left in the meantime
            logger.debug(f'dropping {event} from {sender}: no partner')
            return False
        self.send(outbound, partner, *payload)
        return True
