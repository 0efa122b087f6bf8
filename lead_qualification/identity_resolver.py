"""
Lead identity resolution across the web form and chat channels.
"""

import logging
from typing import Optional

from .models import LeadRecord
from .repository import LeadRepository

logger = logging.getLogger(__name__)


class LeadIdentityResolver:
    """
    Finds the lead a submission belongs to.

    Policy:
    - conversation id first (a chat visitor may not keep a stable session)
    - then session id
    - otherwise there is no existing lead

    Two identifiers that never co-occurred are never merged; a missed match
    only costs a duplicate lead, a wrong match would mix two prospects.
    """

    def __init__(self, repository: LeadRepository):
        self.repository = repository

    async def resolve(
        self,
        session_id: Optional[str],
        conversation_id: Optional[str] = None,
    ) -> Optional[LeadRecord]:
        if conversation_id:
            lead = await self.repository.get_by_conversation_id(conversation_id)
            if lead:
                logger.debug(f"Resolved conversation {conversation_id} to lead {lead.id}")
                return lead

        if session_id:
            lead = await self.repository.get_by_session_id(session_id)
            if lead:
                logger.debug(f"Resolved session {session_id} to lead {lead.id}")
                return lead

        logger.debug(f"No lead for session={session_id} conversation={conversation_id}")
        return None
