import logging

logger = logging.getLogger(__name__)


class Matchmaker:
    """Pairs waiting connections and decides who re-enters matching.

    ``send(event, to, *args)`` delivers one outbound event to one connection.
    It is fire-and-forget; nothing here waits on delivery.
    """

    def __init__(self, state, send):
        self.state = state
        self.send = send

    def start(self, connection_id):
        """Pair the requester with the oldest waiter, or queue it."""
        state = self.state
        state.waiting.remove(connection_id)

        if connection_id not in state.connections:
            logger.debug(f'start for unknown connection {connection_id} ignored')
            return None
        if state.sessions.partner_of(connection_id) is not None:
            logger.debug(f'start for already paired connection {connection_id} ignored')
            return None

        partner = state.waiting.dequeue_next()
        if partner is None:
            state.waiting.enqueue(connection_id)
            logger.info(f'{connection_id} is waiting (queue={len(state.waiting)})')
            self.send('waiting', connection_id)
            return None

        state.sessions.pair(connection_id, partner)
        logger.info(f'paired {connection_id} <-> {partner}')
        self._announce(connection_id, partner)
        self._announce(partner, connection_id)
        return partner

    def end(self, connection_id):
        """Explicit end of session: both sides go back into matching."""
        state = self.state
        state.waiting.remove(connection_id)
        partner = state.sessions.unpair(connection_id)
        if partner is not None:
            logger.info(f'{connection_id} ended chat with {partner}')
            self.send('chatEnded', partner)
        self.send('chatEnded', connection_id)

        # freed connections re-enter matching oldest first
        freed = [partner, connection_id] if partner is not None else [connection_id]
        for conn_id in freed:
            self.start(conn_id)
        return partner

    def drop(self, connection_id):
        """Disconnect teardown: the orphaned partner goes back into matching."""
        state = self.state
        state.waiting.remove(connection_id)
        partner = state.sessions.unpair(connection_id)
        if partner is None:
            return None
        logger.info(f'{connection_id} left, {partner} orphaned')
        self.send('chatEnded', partner)
        self.start(partner)
        return partner

    def _announce(self, to, partner):
        self.send('chatStarted', to, {
            'partnerId': partner,
            'partnerUsername': self.state.connections.display_name(partner),
        })
