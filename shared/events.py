from enum import Enum
from dataclasses import dataclass
from datetime import datetime
import json
import logging
from typing import Iterable, List, Optional

event_logger = logging.getLogger("ratings_api.events")


class EventType(str, Enum):
    # Tournament lifecycle
    TOURNAMENT_CREATED = "tournament.created"
    TOURNAMENT_APPROVED = "tournament.approved"
    TOURNAMENT_TRANSFERRED = "tournament.transferred"
    TOURNAMENT_DELETED = "tournament.deleted"
    
    # State changes
    STATE_CHANGED = "state.changed"
    
    # Registration
    PLAYER_CREATED = "player.created"
    PLAYER_REGISTERED = "player.registered"
    TITLE_GRANTED = "player.title_granted"
    
    # Rounds and matches
    ROUND_GENERATED = "round.generated"
    ROUND_COMPLETED = "round.completed"
    MATCH_RESULT = "match.result"
    
    # Ratings
    RATING_UPDATED = "rating.updated"
    
    # Accounts
    ORGANIZER_APPROVED = "organizer.approved"


@dataclass
class Event:
    type: EventType
    subject_id: str
    timestamp: str = None
    data: dict = None
    
    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.utcnow().isoformat() + "Z"
        if self.data is None:
            self.data = {}
    
    def to_dict(self) -> dict:
        return {
            "type": self.type.value if isinstance(self.type, EventType) else self.type,
            "subject_id": self.subject_id,
            "timestamp": self.timestamp,
            "data": self.data
        }
    
    def to_json(self) -> str:
        return json.dumps(self.to_dict())


def emit(event: Event) -> Event:
    """Write the event to the audit log channel."""
    event_logger.info(event.to_json())
    return event


def emit_all(events: Iterable[Optional[Event]]) -> List[Event]:
    """Emit events staged during a unit of work, skipping empty slots."""
    return [emit(event) for event in events if event is not None]


def state_changed_event(tournament_id, from_state: str, to_state: str) -> Event:
    return Event(
        type=EventType.STATE_CHANGED,
        subject_id=str(tournament_id),
        data={
            "from_state": from_state,
            "to_state": to_state
        }
    )


def match_result_event(tournament_id, match_id: int, result: str, round_num: int) -> Event:
    return Event(
        type=EventType.MATCH_RESULT,
        subject_id=str(tournament_id),
        data={
            "match_id": match_id,
            "result": result,
            "round": round_num
        }
    )


def round_generated_event(tournament_id, round_num: int, matches_count: int) -> Event:
    return Event(
        type=EventType.ROUND_GENERATED,
        subject_id=str(tournament_id),
        data={
            "round": round_num,
            "matches_count": matches_count
        }
    )


def rating_updated_event(player_id: int, format_name: str, old_rating: int, new_rating: int,
                         match_id: int) -> Event:
    return Event(
        type=EventType.RATING_UPDATED,
        subject_id=str(player_id),
        data={
            "format": format_name,
            "old_rating": old_rating,
            "new_rating": new_rating,
            "delta": new_rating - old_rating,
            "match_id": match_id
        }
    )
